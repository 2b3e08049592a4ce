"""
Canal de documents: abstraction minimale au-dessus du magasin de documents.

Opérations exposées aux composants:
- create(collection, data) -> id attribué par le magasin
- fetch(query) -> liste de documents (lecture ponctuelle)
- commit_batch(writes) -> écritures atomiques (tout ou rien)
- subscribe(query, on_snapshot, on_error) -> Subscription (instantané complet à chaque changement)

Les chemins de collection suivent la forme logique "a/{id}/b" (ex: customers/u1/checkout_sessions).
"""
import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from portail.errors import RemoteError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List["Document"]], None]
ErrorCallback = Callable[[BaseException], None]


@dataclass(frozen=True)
class Document:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Query:
    """Requête par égalité sur une collection, ou sur un document précis (doc_id)."""
    collection: str
    where: Tuple[Tuple[str, Any], ...] = ()
    doc_id: Optional[str] = None

    @classmethod
    def document(cls, collection: str, doc_id: str) -> "Query":
        return cls(collection=collection, doc_id=doc_id)

    @classmethod
    def where_equal(cls, collection: str, **filters: Any) -> "Query":
        return cls(collection=collection, where=tuple(sorted(filters.items())))

    def matches(self, doc: Document) -> bool:
        if self.doc_id is not None and doc.id != self.doc_id:
            return False
        return all(doc.data.get(k) == v for k, v in self.where)


@dataclass(frozen=True)
class BatchWrite:
    """Écriture (set) d'un document à id connu, appliquée dans un lot atomique."""
    collection: str
    doc_id: str
    data: Dict[str, Any]


class Subscription:
    """
    Abonnement actif sur une requête.
    - close() est effectif immédiatement: toute livraison déjà planifiée devient un no-op.
    - close() est idempotent; la libération côté magasin est déléguée à `closer`.
    """

    def __init__(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        closer: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.query = query
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._closer = closer
        self.active = True

    def deliver(self, docs: List[Document]) -> None:
        if not self.active:
            return
        try:
            self._on_snapshot(docs)
        except Exception:
            logger.exception("Callback d'instantané en échec collection=%s", self.query.collection)

    def fail(self, exc: BaseException) -> None:
        if not self.active:
            return
        if self._on_error is None:
            logger.warning("Erreur d'abonnement sans gestionnaire collection=%s: %s", self.query.collection, exc)
            return
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("Callback d'erreur en échec collection=%s", self.query.collection)

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._closer:
            self._closer(self)


class DocumentChannel(ABC):
    """Contrat du magasin de documents utilisé par les brokers et le flux."""

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def fetch(self, query: Query) -> List[Document]:
        ...

    @abstractmethod
    async def commit_batch(self, writes: List[BatchWrite]) -> None:
        ...

    @abstractmethod
    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    async def close(self) -> None:
        return None


class InMemoryDocumentChannel(DocumentChannel):
    """
    Magasin en mémoire (dev local + tests).
    - Les livraisons d'instantanés passent par loop.call_soon (asynchrones comme un vrai magasin).
    - update()/emit_error() simulent l'écrivain externe (extension de paiement, panne du flux).
    - fault_injector(op, payload) permet de simuler une panne; pour un lot, une panne laisse zéro écriture.
    """

    def __init__(self, fault_injector: Optional[Callable[[str, Any], None]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: List[Subscription] = []
        self._loops: Dict[int, asyncio.AbstractEventLoop] = {}
        self.fault_injector = fault_injector
        self.create_calls = 0

    # --- lecture/écriture ---

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        self.create_calls += 1
        self._check_fault("create", (collection, data))
        doc_id = uuid.uuid4().hex
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection)
        return doc_id

    async def fetch(self, query: Query) -> List[Document]:
        self._check_fault("fetch", query)
        return self._snapshot(query)

    async def commit_batch(self, writes: List[BatchWrite]) -> None:
        staged = copy.deepcopy(self._collections)
        for write in writes:
            self._check_fault("batch", write)
            staged.setdefault(write.collection, {})[write.doc_id] = copy.deepcopy(write.data)
        self._collections = staged
        for collection in {w.collection for w in writes}:
            self._notify(collection)

    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        self._check_fault("subscribe", query)
        subscription = Subscription(query, on_snapshot, on_error, closer=self._release)
        self._subscriptions.append(subscription)
        self._loops[id(subscription)] = asyncio.get_running_loop()
        # Déclenchement par niveau: l'état courant est livré dès l'ouverture
        self._schedule(subscription)
        return subscription

    # --- simulation de l'écrivain externe ---

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        docs = self._collections.get(collection) or {}
        if doc_id not in docs:
            raise KeyError(f"{collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(fields))
        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        (self._collections.get(collection) or {}).pop(doc_id, None)
        self._notify(collection)

    def emit_error(self, collection: str, exc: BaseException) -> None:
        for sub in list(self._subscriptions):
            if sub.query.collection == collection:
                self._loops[id(sub)].call_soon_threadsafe(sub.fail, exc)

    def documents(self, collection: str) -> List[Document]:
        return [Document(k, copy.deepcopy(v)) for k, v in (self._collections.get(collection) or {}).items()]

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    # --- interne ---

    def _check_fault(self, op: str, payload: Any) -> None:
        if self.fault_injector is None:
            return
        try:
            self.fault_injector(op, payload)
        except RemoteError:
            raise
        except Exception as e:
            raise RemoteError(code=getattr(e, "code", None) or "store/unavailable", cause=e) from e

    def _snapshot(self, query: Query) -> List[Document]:
        docs = [Document(k, copy.deepcopy(v)) for k, v in (self._collections.get(query.collection) or {}).items()]
        return [d for d in docs if query.matches(d)]

    def _schedule(self, subscription: Subscription) -> None:
        # Boucle de l'abonné: les écritures simulées peuvent venir d'un autre thread (TestClient)
        loop = self._loops[id(subscription)]
        loop.call_soon_threadsafe(lambda: subscription.deliver(self._snapshot(subscription.query)))

    def _notify(self, collection: str) -> None:
        for sub in list(self._subscriptions):
            if sub.active and sub.query.collection == collection:
                self._schedule(sub)

    def _release(self, subscription: Subscription) -> None:
        self._loops.pop(id(subscription), None)
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
