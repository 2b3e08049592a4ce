import types
import pytest
from portail.auth.models import AuthResponse
from portail.auth import service as svc
from portail.errors import RemoteError, ValidationError
from portail.infra.channel import InMemoryDocumentChannel

def _signup_result(user_id="new-1", access_token=None):
    session = types.SimpleNamespace(access_token=access_token, refresh_token="r") if access_token else None
    return types.SimpleNamespace(
        user=types.SimpleNamespace(id=user_id, email="a@b.com"),
        session=session,
    )

def test_login_success(monkeypatch):
    calls = {}
    def fake_sign_in(email, password):
        calls["email"] = email
        calls["password"] = password
        return {"ok": True}

    def fake_make_auth_response(res, fallback_error=None):
        return AuthResponse(True, user={"id": "u1"}, session={"access_token": "t"})

    monkeypatch.setattr(svc, "sign_in_password", fake_sign_in)
    monkeypatch.setattr(svc, "make_auth_response", fake_make_auth_response)

    res = svc.login(" user@example.com ", "pwd")
    assert res.success is True
    assert res.access_token == "t"
    assert calls["email"] == "user@example.com"
    assert calls["password"] == "pwd"

def test_login_exception_is_localized(monkeypatch):
    def fake_sign_in(email, password):
        raise RuntimeError("Invalid login credentials")

    monkeypatch.setattr(svc, "sign_in_password", fake_sign_in)

    res = svc.login("x@y.com", "z")
    assert res.success is False
    assert res.error == "Email ou mot de passe incorrect. Vérifiez vos informations."

@pytest.mark.parametrize(
    "email,password,confirm,code",
    [
        ("pas-un-email", "secret1", "secret1", "signup/invalid-email"),
        ("a@b.com", "secret1", "secret2", "signup/password-mismatch"),
        ("a@b.com", "abc", "abc", "signup/weak-password"),
    ],
)
@pytest.mark.asyncio
async def test_signup_validation_happens_before_any_remote_call(monkeypatch, email, password, confirm, code):
    def fake_sign_up(*a, **kw):
        raise AssertionError("ne doit pas être appelé")

    monkeypatch.setattr(svc, "sign_up_account", fake_sign_up)
    channel = InMemoryDocumentChannel()

    with pytest.raises(ValidationError) as exc:
        await svc.signup(channel, email, password, confirm)
    assert exc.value.code == code
    assert channel.documents("users") == []

@pytest.mark.asyncio
async def test_signup_provisions_profile_and_customer(monkeypatch):
    monkeypatch.setattr(svc, "sign_up_account", lambda email, password: _signup_result(access_token="abc"))
    channel = InMemoryDocumentChannel()

    res = await svc.signup(channel, "a@b.com", "secret1", "secret1")

    assert res.success is True
    assert res.access_token == "abc"
    users = channel.documents("users")
    customers = channel.documents("customers")
    assert [u.id for u in users] == ["new-1"]
    assert users[0].get("token_balance") == 10000
    assert users[0].get("status") == "active"
    assert users[0].get("role") == "user"
    assert [(c.id, c.get("email")) for c in customers] == [("new-1", "a@b.com")]

@pytest.mark.asyncio
async def test_signup_batch_failure_leaves_no_partial_records(monkeypatch):
    monkeypatch.setattr(svc, "sign_up_account", lambda email, password: _signup_result())

    def fail_on_customer(op, payload):
        if op == "batch" and payload.collection == "customers":
            raise RuntimeError("coupure réseau")

    channel = InMemoryDocumentChannel(fault_injector=fail_on_customer)

    with pytest.raises(RemoteError):
        await svc.signup(channel, "a@b.com", "secret1", "secret1")
    assert channel.documents("users") == []
    assert channel.documents("customers") == []

@pytest.mark.asyncio
async def test_signup_without_session_needs_email_verification(monkeypatch):
    monkeypatch.setattr(svc, "sign_up_account", lambda email, password: _signup_result())
    res = await svc.signup(InMemoryDocumentChannel(), "x@example.com", "secret1", "secret1")
    assert res.success is True
    assert "vérifiez votre email" in res.error.lower()

@pytest.mark.asyncio
async def test_signup_existing_account(monkeypatch):
    def fake_sign_up(email, password):
        raise Exception("User already registered")
    monkeypatch.setattr(svc, "sign_up_account", fake_sign_up)
    channel = InMemoryDocumentChannel()

    res = await svc.signup(channel, "x@example.com", "secret1", "secret1")
    assert res.success is False
    assert "déjà utilisé" in res.error
    assert channel.documents("users") == []

def test_logout_is_best_effort(monkeypatch):
    def fake_sign_out(token):
        raise RuntimeError("boom")
    monkeypatch.setattr(svc, "sign_out", fake_sign_out)
    svc.logout("tok")
    svc.logout(None)

@pytest.mark.asyncio
async def test_resolve_current_user(monkeypatch):
    monkeypatch.setattr(
        svc, "_repo_get_user_from_token", lambda tok: {"id": "u1", "email": "admin@example.com"}
    )
    channel = InMemoryDocumentChannel()
    channel.set("users", "u1", {"status": "active", "token_balance": 42})

    user = await svc.resolve_current_user(channel, "tok")
    assert user.id == "u1"
    assert user.is_admin is True
    assert user.token_balance == 42
    assert user.token == "tok"

@pytest.mark.asyncio
async def test_resolve_current_user_locks_out_disabled_or_missing_profile(monkeypatch):
    monkeypatch.setattr(svc, "_repo_get_user_from_token", lambda tok: {"id": "u1", "email": "u@example.com"})
    channel = InMemoryDocumentChannel()

    assert await svc.resolve_current_user(channel, "tok") is None
    channel.set("users", "u1", {"status": "disabled"})
    assert await svc.resolve_current_user(channel, "tok") is None

@pytest.mark.asyncio
async def test_resolve_current_user_bad_token(monkeypatch):
    def fake_get_user(tok):
        raise RuntimeError("invalid JWT")
    monkeypatch.setattr(svc, "_repo_get_user_from_token", fake_get_user)
    assert await svc.resolve_current_user(InMemoryDocumentChannel(), "bad") is None
    assert await svc.resolve_current_user(InMemoryDocumentChannel(), "") is None
