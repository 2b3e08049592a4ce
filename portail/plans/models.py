from typing import Dict, List, Literal, Union

from pydantic import BaseModel, Field

from portail.infra.channel import Document

Localized = Union[str, Dict[str, str]]


class Plan(BaseModel):
    """Offre d'abonnement (table subscription_plans). price_id référence le prix Stripe."""
    id: str
    price_id: str
    tokens: int = Field(ge=0)
    title: Localized = ""
    price: Localized = ""
    features: List[Localized] = Field(default_factory=list)
    is_popular: bool = False
    status: Literal["active", "inactive"] = "active"

    @classmethod
    def from_document(cls, doc: Document) -> "Plan":
        return cls.model_validate({**doc.data, "id": doc.id})
