"""
Corrélation requête/réponse sur un document partagé.

Le client écrit un document d'intention puis attend qu'un tiers y ajoute un champ résultat.
- SettleToken: garde « une seule fois » (le premier qui règle gagne, les suivants sont des no-op).
- PendingRequests: table des attentes en cours, indexée par identifiant de corrélation (id du document).
- await_field(): ouvre l'abonnement, arme le minuteur, et se règle sur le premier des deux.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from portail.errors import CheckoutTimeout, FeedError
from .channel import Document, DocumentChannel, Query, Subscription

logger = logging.getLogger(__name__)

FieldPredicate = Callable[[Document], bool]


class SettleToken:
    def __init__(self):
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def try_settle(self) -> bool:
        # Lecture puis écriture sans suspension: atomique dans la boucle d'événements
        if self._settled:
            return False
        self._settled = True
        return True


class PendingRequest:
    """Une attente en cours: futur, abonnement, minuteur, partageant un même jeton."""

    def __init__(self, correlation_id: str, future: "asyncio.Future[Document]"):
        self.correlation_id = correlation_id
        self.future = future
        self.token = SettleToken()
        self.subscription: Optional[Subscription] = None
        self.timer: Optional[asyncio.TimerHandle] = None

    def settle(self, result: Optional[Document] = None, exc: Optional[BaseException] = None) -> bool:
        if not self.token.try_settle():
            return False
        if self.timer is not None:
            self.timer.cancel()
        if self.subscription is not None:
            self.subscription.close()
        if not self.future.done():
            if exc is not None:
                self.future.set_exception(exc)
            else:
                self.future.set_result(result)
        return True


class PendingRequests:
    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}

    def open(self, correlation_id: str) -> PendingRequest:
        if correlation_id in self._pending:
            raise ValueError(f"Attente déjà ouverte pour {correlation_id}")
        future = asyncio.get_running_loop().create_future()
        request = PendingRequest(correlation_id, future)
        self._pending[correlation_id] = request
        future.add_done_callback(lambda _f: self._pending.pop(correlation_id, None))
        return request

    def get(self, correlation_id: str) -> Optional[PendingRequest]:
        return self._pending.get(correlation_id)

    def ids(self) -> List[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)


async def await_field(
    channel: DocumentChannel,
    query: Query,
    predicate: FieldPredicate,
    timeout: float,
    *,
    pending: Optional[PendingRequests] = None,
    timeout_error: Optional[Callable[[], BaseException]] = None,
) -> Document:
    """
    Attend qu'un document de `query` satisfasse `predicate`, au plus `timeout` secondes.
    - Déclenchement par niveau: un champ déjà présent au premier instantané est pris en compte.
    - Le premier entre instantané et minuteur règle l'attente; l'autre devient un no-op.
    - Lève CheckoutTimeout (ou timeout_error()) au délai, FeedError si l'abonnement échoue.
    """
    table = pending if pending is not None else PendingRequests()
    correlation_id = query.doc_id or query.collection
    request = table.open(correlation_id)
    loop = asyncio.get_running_loop()

    def _on_snapshot(docs: List[Document]) -> None:
        for doc in docs:
            if predicate(doc):
                request.settle(result=doc)
                return

    def _on_error(exc: BaseException) -> None:
        logger.warning("await_field: abonnement en échec id=%s: %s", correlation_id, exc)
        request.settle(exc=FeedError(code="feed/subscription-failed"))

    def _on_timeout() -> None:
        if request.settle(exc=(timeout_error() if timeout_error else CheckoutTimeout())):
            logger.warning("await_field: délai dépassé id=%s (%.1fs)", correlation_id, timeout)

    request.timer = loop.call_later(timeout, _on_timeout)
    try:
        try:
            subscription = await channel.subscribe(query, _on_snapshot, _on_error)
        except Exception as e:
            request.settle(exc=e)
        else:
            if request.token.settled:
                subscription.close()
            else:
                request.subscription = subscription
        return await request.future
    except asyncio.CancelledError:
        # Annulation de l'appelant: on libère minuteur et abonnement sans régler de résultat
        request.future.cancel()
        request.settle()
        raise
