import time
import uuid

import pytest

from app.lending import create_app
from app.lending.auth import _login_attempts
from app.lending.constants import ROLE_ADMIN, ROLE_PROCESSOR
from app.lending.db import session_scope
from app.lending.identity import AuthSession, AuthUser, IdentityProviderError
from app.lending.models import Base, Role, User
from app.lending.modules.locations.models import RefCity, RefProvince, RefRegion
from app.lending.modules.locations.service import load_psgc_rows
from scripts.init_db import seed
from scripts.seed_psgc import sample_rows

CSRF = "test-csrf-token"


class FakeIdentityProvider:
    """In-memory stand-in for the hosted identity provider."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, AuthUser]] = {}
        self.codes: dict[str, AuthUser] = {}
        self.signed_out: list[str] = []
        self.reset_requests: list[str] = []
        self.confirm_email = False

    def add_account(self, email: str, password: str = "password123", **meta) -> AuthUser:
        user = AuthUser(id=str(uuid.uuid4()), email=email, user_metadata=meta)
        self.accounts[email] = (password, user)
        return user

    def _session(self, user: AuthUser, expires_in: int = 3600) -> AuthSession:
        return AuthSession(
            access_token=f"access-{user.id}",
            refresh_token=f"refresh-{user.id}",
            expires_at=int(time.time()) + expires_in,
            user=user,
        )

    def sign_in_with_password(self, email, password):
        entry = self.accounts.get(email)
        if not entry or entry[0] != password:
            raise IdentityProviderError("Invalid login credentials", status=400)
        return self._session(entry[1])

    def sign_up(self, email, password, *, data=None, redirect_to=None, code_challenge=None):
        if email in self.accounts:
            raise IdentityProviderError("User already registered", status=422)
        user = self.add_account(email, password, **(data or {}))
        if self.confirm_email:
            return user, None
        return user, self._session(user)

    def exchange_code_for_session(self, code, code_verifier):
        user = self.codes.get(code)
        if user is None:
            raise IdentityProviderError("invalid flow state", status=400)
        return self._session(user)

    def refresh_session(self, refresh_token):
        for _password, user in self.accounts.values():
            if refresh_token == f"refresh-{user.id}":
                return self._session(user)
        raise IdentityProviderError("Invalid Refresh Token", status=400)

    def get_user(self, access_token):
        for _password, user in self.accounts.values():
            if access_token == f"access-{user.id}":
                return user
        raise IdentityProviderError("invalid JWT", status=401)

    def sign_out(self, access_token):
        self.signed_out.append(access_token)

    def update_password(self, access_token, password):
        user = self.get_user(access_token)
        self.accounts[user.email] = (password, user)
        return user

    def reset_password_for_email(self, email, *, redirect_to=None, code_challenge=None):
        self.reset_requests.append(email)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("SUPABASE_URL", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    # Re-check against the freshly created schema.
    app.extensions["schema_health_check"]()

    with session_scope(app) as s:
        seed(s)
        load_psgc_rows(s, sample_rows())

    app.extensions["identity_provider"] = FakeIdentityProvider()
    _login_attempts.clear()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def identity(app):
    return app.extensions["identity_provider"]


def make_user(app, email: str, role: str = ROLE_PROCESSOR, *, active: bool = True) -> int:
    with session_scope(app) as s:
        u = User(auth_id=str(uuid.uuid4()), email=email, first_name="Test", last_name="User", is_active=active)
        u.roles.append(s.query(Role).filter(Role.key == role).one())
        s.add(u)
        s.flush()
        return u.id


def login_as(client, user_id: int) -> None:
    """Plant a signed-in session without going through the provider."""
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["auth_access_token"] = "access-test"
        sess["auth_refresh_token"] = "refresh-test"
        sess["auth_expires_at"] = int(time.time()) + 3600
        sess["csrf_token"] = CSRF


def csrf(client) -> str:
    with client.session_transaction() as sess:
        sess.setdefault("csrf_token", CSRF)
        return sess["csrf_token"]


@pytest.fixture()
def processor(app):
    return make_user(app, "processor@example.com", ROLE_PROCESSOR)


@pytest.fixture()
def admin(app):
    return make_user(app, "admin@example.com", ROLE_ADMIN)


@pytest.fixture()
def processor_client(client, processor):
    login_as(client, processor)
    return client


@pytest.fixture()
def admin_client(client, admin):
    login_as(client, admin)
    return client


@pytest.fixture()
def db(app):
    s = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
    finally:
        s.close()


def get_user(s, user_id: int) -> User:
    return s.get(User, user_id)


STEP1 = {
    "borrower_first_name": "Maria",
    "borrower_middle_name": "Santos",
    "borrower_last_name": "Dela-Cruz",
    "borrower_email": "maria@example.com",
    "borrower_phone": "09171234567",
}

STEP3 = {
    "loan_amount": "50000",
    "loan_purpose": "Working capital for a sari-sari store expansion",
    "loan_term_months": "12",
}


def step2_data(s) -> dict[str, str]:
    """Quezon City, NCR Second District, NCR (from the sample PSGC set)."""
    region = s.query(RefRegion).filter(RefRegion.psgc_code == "130000000").one()
    province = s.query(RefProvince).filter(RefProvince.psgc_code == "137400000").one()
    city = s.query(RefCity).filter(RefCity.psgc_code == "137404000").one()
    return {
        "region_id": region.id,
        "province_id": province.id,
        "city_id": city.id,
        "borrower_address": "123 Mabini Street, Barangay Central",
    }


def submitted_application(s, user):
    """Create a draft and walk it through all four steps."""
    from app.lending.modules.applications.service import create_draft, save_step

    app = create_draft(s, user)
    save_step(s, app, user, 1, STEP1)
    save_step(s, app, user, 2, step2_data(s))
    save_step(s, app, user, 3, STEP3)
    save_step(s, app, user, 4, {"terms_accepted": "on"})
    s.commit()
    return app
