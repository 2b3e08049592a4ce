"""
Canal de documents adossé à Supabase (PostgREST + Realtime).

Correspondance des chemins logiques:
- "subscription_plans"               -> table subscription_plans
- "users/{uid}" (via doc_id)          -> table users, id = uid
- "customers/{uid}/checkout_sessions" -> table checkout_sessions, filtre customer_id = uid

Abonnements: un canal Realtime postgres_changes par abonnement; chaque changement
relance la requête complète et livre un instantané entier (jamais un delta).
Lots atomiques: RPC commit_batch (voir supabase/schema.sql), exécutée dans une transaction.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set, Tuple

from postgrest.exceptions import APIError
from supabase import AsyncClient

from portail.errors import RemoteError, remote_error_from
from .channel import (
    BatchWrite,
    Document,
    DocumentChannel,
    ErrorCallback,
    Query,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)

_FAILED_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}

# Codes Postgres/PostgREST -> codes du magasin (voir portail.errors.MESSAGES)
_PG_CODES = {
    "42501": "store/permission-denied",
    "42P01": "store/failed-precondition",
    "42703": "store/failed-precondition",
    "42883": "store/failed-precondition",
    "PGRST202": "store/failed-precondition",
}

def store_error(exc: BaseException) -> RemoteError:
    if isinstance(exc, APIError):
        return RemoteError(code=_PG_CODES.get(str(exc.code or ""), "store/unavailable"), cause=exc)
    return remote_error_from(exc, fallback_code="store/unavailable")

def resolve_table(collection: str) -> Tuple[str, Dict[str, str]]:
    """
    Traduit un chemin de collection en (table, filtres parent).
    - "a/{id}/b" -> ("b", {"a_singulier_id": id}); les niveaux supplémentaires s'empilent.
    """
    parts = [p for p in (collection or "").split("/") if p]
    if not parts or len(parts) % 2 == 0:
        raise ValueError(f"Chemin de collection invalide: {collection!r}")
    parents: Dict[str, str] = {}
    for i in range(0, len(parts) - 1, 2):
        parent, parent_id = parts[i], parts[i + 1]
        parents[f"{parent[:-1] if parent.endswith('s') else parent}_id"] = parent_id
    return parts[-1], parents


class SupabaseDocumentChannel(DocumentChannel):
    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema
        self._channels: Dict[int, Any] = {}
        # Génération par abonnement: seul le rechargement le plus récent peut livrer
        self._generations: Dict[int, int] = {}
        self._tasks: Set["asyncio.Task[None]"] = set()

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        table, parents = resolve_table(collection)
        payload = {**parents, **data}
        try:
            res = await self.client.table(table).insert(payload).execute()
        except Exception as e:
            logger.exception("supabase_channel.create failed table=%s", table)
            raise store_error(e) from e
        rows = res.data or []
        if not rows or not rows[0].get("id"):
            raise remote_error_from(RuntimeError("insert sans id"), fallback_code="checkout/create-failed")
        return str(rows[0]["id"])

    async def fetch(self, query: Query) -> List[Document]:
        table, parents = resolve_table(query.collection)
        builder = self.client.table(table).select("*")
        for column, value in list(parents.items()) + list(query.where):
            builder = builder.eq(column, value)
        if query.doc_id is not None:
            builder = builder.eq("id", query.doc_id)
        try:
            res = await builder.execute()
        except Exception as e:
            logger.exception("supabase_channel.fetch failed table=%s", table)
            raise store_error(e) from e
        return [Document(str(row.get("id")), dict(row)) for row in (res.data or [])]

    async def commit_batch(self, writes: List[BatchWrite]) -> None:
        payload = []
        for w in writes:
            table, parents = resolve_table(w.collection)
            payload.append({"table": table, "data": {**parents, **w.data, "id": w.doc_id}})
        try:
            await self.client.rpc("commit_batch", {"writes": payload}).execute()
        except Exception as e:
            logger.exception("supabase_channel.commit_batch failed tables=%s", [p["table"] for p in payload])
            raise store_error(e) from e

    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        table, parents = resolve_table(query.collection)
        subscription = Subscription(query, on_snapshot, on_error, closer=self._release)
        loop = asyncio.get_running_loop()

        def _on_change(_payload: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(self._schedule_refresh, subscription)

        def _on_status(status: Any, err: Optional[Exception] = None) -> None:
            state = str(getattr(status, "value", status))
            if state in _FAILED_STATES:
                exc = err or RuntimeError(f"realtime {state}")
                loop.call_soon_threadsafe(subscription.fail, exc)

        realtime = self.client.channel(f"{table}:{uuid.uuid4().hex}")
        realtime.on_postgres_changes(
            event="*",
            schema=self.schema,
            table=table,
            filter=self._realtime_filter(query, parents),
            callback=_on_change,
        )
        try:
            await realtime.subscribe(_on_status)
        except Exception as e:
            logger.exception("supabase_channel.subscribe failed table=%s", table)
            raise store_error(e) from e
        self._channels[id(subscription)] = realtime
        # Déclenchement par niveau: instantané initial
        await self._refresh(subscription)
        return subscription

    async def close(self) -> None:
        for realtime in list(self._channels.values()):
            try:
                await self.client.remove_channel(realtime)
            except Exception:
                logger.warning("supabase_channel.close: remove_channel en échec", exc_info=True)
        self._channels.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._generations.clear()

    def _schedule_refresh(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        key = id(subscription)
        self._generations[key] = self._generations.get(key, 0) + 1
        task = asyncio.ensure_future(self._refresh(subscription))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        key = id(subscription)
        generation = self._generations.get(key, 0)
        try:
            docs = await self.fetch(subscription.query)
        except Exception as e:
            if self._generations.get(key, 0) == generation:
                subscription.fail(e)
            return
        if self._generations.get(key, 0) != generation:
            logger.debug("supabase_channel: instantané périmé ignoré collection=%s", subscription.query.collection)
            return
        subscription.deliver(docs)

    def _release(self, subscription: Subscription) -> None:
        self._generations.pop(id(subscription), None)
        realtime = self._channels.pop(id(subscription), None)
        if realtime is None:
            return
        task = asyncio.ensure_future(self.client.remove_channel(realtime))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _realtime_filter(query: Query, parents: Dict[str, str]) -> Optional[str]:
        # Realtime n'accepte qu'un seul filtre d'égalité; la requête complète affine ensuite
        if query.doc_id is not None:
            return f"id=eq.{query.doc_id}"
        for column, value in list(parents.items()) + list(query.where):
            return f"{column}=eq.{value}"
        return None
