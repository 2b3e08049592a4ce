"""
Synchroniseur de flux: maintient une liste ordonnée et dédoublonnée à partir des instantanés
d'une requête du magasin de documents.

- Chaque instantané remplace entièrement la liste (jamais de fusion incrémentale).
- Tri: created_at décroissant, date absente = epoch 0 (en dernier), égalité départagée par id décroissant.
- Dédoublonnage par id dans un instantané: la dernière occurrence gagne.
- Un enregistrement illisible est ignoré (journalisé), le reste de l'instantané est conservé.
- Les erreurs d'abonnement ne remontent jamais à l'appelant: journalisées, comptées,
  la dernière liste valide est conservée.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from portail.infra.channel import Document, DocumentChannel, Query, Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")

Parser = Callable[[Document], T]
SortKey = Callable[[T], Tuple[Any, ...]]
Predicate = Callable[[T], bool]
ChangeListener = Callable[[List[T]], None]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_datetime(value: Any) -> datetime:
    """
    Normalise un horodatage du magasin: datetime, chaîne ISO 8601, nombre (secondes epoch)
    ou {"seconds": ...}. Valeur absente -> epoch 0.
    """
    if value is None or value == "":
        return EPOCH
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise TypeError(f"Horodatage invalide: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(float(value["seconds"]), tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError(f"Horodatage invalide: {value!r}")


def newest_first(item: Any) -> Tuple[datetime, str]:
    """Clé de tri par défaut (à utiliser avec reverse=True): (created_at, id)."""
    return (getattr(item, "created_at", None) or EPOCH, str(getattr(item, "id")))


def order_snapshot(items: List[T], sort_key: SortKey = newest_first) -> List[T]:
    by_id = {}
    for item in items:
        key = str(getattr(item, "id"))
        # Dernière occurrence gagne
        by_id[key] = item
    return sorted(by_id.values(), key=sort_key, reverse=True)


class FeedHandle(Generic[T]):
    """Poignée d'un abonnement au flux: dernière liste, compteur d'erreurs, désabonnement."""

    def __init__(self, predicate: Optional[Predicate] = None, on_change: Optional[ChangeListener] = None):
        self.items: List[T] = []
        self.snapshots = 0
        self.error_count = 0
        self.last_error: Optional[BaseException] = None
        self._predicate = predicate
        self._on_change = on_change
        self._subscription: Optional[Subscription] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.close()

    def _publish(self, items: List[T]) -> None:
        if self._predicate is not None:
            items = [item for item in items if self._predicate(item)]
        self.items = items
        self.snapshots += 1
        if self._on_change is not None:
            try:
                self._on_change(list(items))
            except Exception:
                logger.exception("Écouteur du flux en échec")

    def _record_error(self, exc: BaseException) -> None:
        self.error_count += 1
        self.last_error = exc


class FeedSynchronizer(Generic[T]):
    def __init__(
        self,
        channel: DocumentChannel,
        query: Query,
        parse: Parser,
        sort_key: SortKey = newest_first,
    ):
        self.channel = channel
        self.query = query
        self.parse = parse
        self.sort_key = sort_key

    def build_items(self, docs: List[Document]) -> List[T]:
        parsed: List[T] = []
        for doc in docs:
            try:
                parsed.append(self.parse(doc))
            except (ValueError, TypeError, KeyError) as e:
                logger.warning("feed: enregistrement ignoré collection=%s id=%s: %s", self.query.collection, doc.id, e)
        return order_snapshot(parsed, self.sort_key)

    async def subscribe(
        self,
        predicate: Optional[Predicate] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> FeedHandle:
        """
        Ouvre l'abonnement; `predicate` filtre les éléments (ex: audience de l'utilisateur).
        Un échec d'ouverture est absorbé: la poignée reste vide et compte l'erreur.
        """
        handle: FeedHandle = FeedHandle(predicate, on_change)

        def _on_snapshot(docs: List[Document]) -> None:
            handle._publish(self.build_items(docs))

        def _on_error(exc: BaseException) -> None:
            logger.warning("feed: abonnement en échec collection=%s: %s", self.query.collection, exc)
            handle._record_error(exc)

        try:
            handle._subscription = await self.channel.subscribe(self.query, _on_snapshot, _on_error)
        except Exception as e:
            logger.warning("feed: ouverture impossible collection=%s: %s", self.query.collection, e)
            handle._record_error(e)
        return handle
