import asyncio
import os

# Avant tout import du portail: canal en mémoire, pas de Redis, clé publiable de test
os.environ["DOCUMENT_BACKEND"] = "memory"
os.environ["DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS"] = "1"
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_portail123")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")

import pytest
from typing import Generator, Optional
from fastapi.testclient import TestClient

from portail.app import app as fastapi_app
from portail.auth.models import CurrentUser
from portail.infra.channel import InMemoryDocumentChannel
from portail.site.models import SiteSettings
from portail.utils.security import get_optional_user
from portail.utils.state import get_site_settings

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def channel() -> InMemoryDocumentChannel:
    return InMemoryDocumentChannel()

@pytest.fixture
def user() -> CurrentUser:
    return CurrentUser(id="u1", email="user@example.com", token_balance=10000, token="tok-u1")

@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(id="admin-1", email="admin@example.com", is_admin=True, token_balance=500, token="tok-admin")

@pytest.fixture
def login_as(app):
    """Simule la session courante pour les pages et l'API (None = visiteur)."""
    def _login(u: Optional[CurrentUser]) -> None:
        app.dependency_overrides[get_optional_user] = lambda: u
    yield _login
    app.dependency_overrides.pop(get_optional_user, None)

@pytest.fixture
def site_settings(app):
    """Force les paramètres du site vus par les pages."""
    def _set(settings: SiteSettings) -> None:
        app.dependency_overrides[get_site_settings] = lambda: settings
    yield _set
    app.dependency_overrides.pop(get_site_settings, None)

class ExtensionChannel(InMemoryDocumentChannel):
    """Canal en mémoire simulant l'extension de paiement: complète chaque intention après `delay`."""

    def __init__(self, result=None, delay=0.04, **kwargs):
        super().__init__(**kwargs)
        self.result = result
        self.delay = delay
        self.created = []

    async def create(self, collection, data):
        doc_id = await super().create(collection, data)
        self.created.append((collection, doc_id))
        if self.result is not None:
            asyncio.get_running_loop().call_later(self.delay, self.update, collection, doc_id, self.result)
        return doc_id

@pytest.fixture
def extension_channel():
    return ExtensionChannel
