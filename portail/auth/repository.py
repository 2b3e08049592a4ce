from typing import Any, Dict, List, Optional

from portail.infra.channel import BatchWrite, Document, DocumentChannel, Query
from portail.infra.supabase_client import get_service_supabase, get_supabase

USERS_COLLECTION = "users"
CUSTOMERS_COLLECTION = "customers"

# --- Auth (supabase.auth.*) ---

def auth_sign_in_password(email: str, password: str):
    """Wrapper Supabase Auth: connexion par email/mot de passe (GoTrue)."""
    client = get_supabase()
    return client.auth.sign_in_with_password({"email": email, "password": password})

def auth_sign_up_account(email: str, password: str):
    """Wrapper Supabase Auth: création du compte d'identité (sans profil applicatif)."""
    client = get_supabase()
    return client.auth.sign_up({"email": email, "password": password})

def auth_sign_out(access_token: str) -> None:
    """Révoque la session côté GoTrue (nécessite la clé de service)."""
    get_service_supabase().auth.admin.sign_out(access_token)

def get_user_from_access_token(access_token: str) -> Dict[str, Any]:
    """Récupère et normalise l'utilisateur depuis supabase.auth.get_user(access_token)."""
    res = get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) or {}
    if not isinstance(user, dict):
        user = {
            "id": getattr(user, "id", None),
            "email": getattr(user, "email", None),
        }
    return user or {}

# --- Profil applicatif (users/{uid}, customers/{uid}) ---

async def get_user_profile(channel: DocumentChannel, user_id: str) -> Optional[Document]:
    """Profil users/{uid}; None s'il n'existe pas. Les erreurs du magasin remontent."""
    docs = await channel.fetch(Query.document(USERS_COLLECTION, user_id))
    return docs[0] if docs else None

async def commit_profile_writes(channel: DocumentChannel, writes: List[BatchWrite]) -> None:
    await channel.commit_batch(writes)
