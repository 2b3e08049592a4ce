"""Accès aux offres (subscription_plans) via le canal de documents."""
from typing import List

from portail.infra.channel import Document, DocumentChannel, Query

PLANS_COLLECTION = "subscription_plans"


async def fetch_active_plan_documents(channel: DocumentChannel) -> List[Document]:
    """Lecture ponctuelle des offres status == "active". Les erreurs du magasin remontent telles quelles."""
    return await channel.fetch(Query.where_equal(PLANS_COLLECTION, status="active"))
