from typing import Optional
from supabase import create_client, acreate_client, Client, AsyncClient
from portail.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def get_supabase() -> Client:
    """Client 'anon' synchrone: Supabase Auth (GoTrue) et lectures de profil."""
    global _supabase
    if _supabase is None:
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase

def get_service_supabase() -> Client:
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase

async def create_async_supabase() -> AsyncClient:
    """
    Client asynchrone pour les tables et Realtime (canal de documents).
    - Utilise la clé de service si disponible (le serveur agit au nom des sessions), sinon la clé anon.
    - Une instance par processus, créée par le lifespan.
    """
    key = SUPABASE_SERVICE_KEY or SUPABASE_ANON
    if not SUPABASE_URL or not key:
        raise RuntimeError("SUPABASE_URL / clé Supabase manquants pour le canal de documents")
    return await acreate_client(SUPABASE_URL, key)
