"""
Cloche de notifications: FeedSynchronizer sur system_notifications (is_active = true),
liée au cycle de vie de l'identité (ouverture à la connexion, fermeture à la déconnexion,
réouverture si l'identité change).
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from portail.auth.models import CurrentUser
from portail.infra.channel import Document, DocumentChannel, Query
from .synchronizer import FeedHandle, FeedSynchronizer, to_datetime

logger = logging.getLogger(__name__)

NOTIFICATIONS_COLLECTION = "system_notifications"

Localized = Union[str, Dict[str, str]]


class NotificationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    is_active: bool = True
    type: Literal["info", "success", "warning", "alert"] = "info"
    title: Localized = ""
    message: Localized = ""
    created_at: Optional[datetime] = None
    audience: str = "all"

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        try:
            return to_datetime(value)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @classmethod
    def from_document(cls, doc: Document) -> "NotificationRecord":
        return cls.model_validate({**doc.data, "id": doc.id})

    def visible_to(self, user: Optional[CurrentUser]) -> bool:
        """Audience: "all" pour tous, "admins" pour les admins, sinon l'id d'un utilisateur."""
        if user is None:
            return False
        if self.audience == "all":
            return True
        if self.audience == "admins":
            return user.is_admin
        return self.audience == user.id

    def localized(self, lang: str = "fr") -> Dict[str, Any]:
        def pick(value: Localized) -> str:
            if isinstance(value, dict):
                return value.get(lang) or value.get("en") or next(iter(value.values()), "")
            return value

        return {
            "id": self.id,
            "type": self.type,
            "title": pick(self.title),
            "message": pick(self.message),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def notifications_query() -> Query:
    return Query.where_equal(NOTIFICATIONS_COLLECTION, is_active=True)


class NotificationBell:
    """
    Flux de notifications d'une session.
    - activate(user): ouvre le flux avec le filtre de cette identité.
    - deactivate(): ferme le flux (la liste est vidée).
    - on_user_changed(user): ferme puis rouvre si l'identité a changé ou si le flux est tombé, no-op sinon.
    """

    def __init__(
        self,
        channel: DocumentChannel,
        on_change: Optional[Callable[[List[NotificationRecord]], None]] = None,
    ):
        self.synchronizer: FeedSynchronizer[NotificationRecord] = FeedSynchronizer(
            channel, notifications_query(), NotificationRecord.from_document
        )
        self.on_change = on_change
        self.user: Optional[CurrentUser] = None
        self.handle: Optional[FeedHandle] = None

    @property
    def items(self) -> List[NotificationRecord]:
        return list(self.handle.items) if self.handle else []

    @property
    def active(self) -> bool:
        return self.handle is not None and self.handle.active

    @staticmethod
    def _identity(user: Optional[CurrentUser]) -> Optional[Tuple[str, bool]]:
        return (user.id, user.is_admin) if user else None

    async def activate(self, user: CurrentUser) -> FeedHandle:
        if self.handle is not None and self.handle.active and self._identity(user) == self._identity(self.user):
            return self.handle
        self.deactivate()
        self.user = user
        self.handle = await self.synchronizer.subscribe(
            predicate=lambda record: record.visible_to(user),
            on_change=self.on_change,
        )
        logger.info("notifications.activate user_id=%s", user.id)
        return self.handle

    def deactivate(self) -> None:
        if self.handle is not None:
            self.handle.unsubscribe()
            logger.info("notifications.deactivate user_id=%s", self.user.id if self.user else None)
        self.handle = None
        self.user = None

    async def on_user_changed(self, user: Optional[CurrentUser]) -> None:
        if user is None:
            self.deactivate()
            return
        await self.activate(user)
