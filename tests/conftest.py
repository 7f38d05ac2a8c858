import pytest

from eauth.backend.app import create_app
from eauth.backend.config import TestingConfig
from eauth.core.accounts import AccountService
from eauth.core.otp_core import TotpParameters
from eauth.core.policy import VerificationPolicy
from eauth.database.db_manager import SqliteAccountStore

# RFC 4226 / RFC 6238 reference key (ASCII "12345678901234567890")
RFC_SECRET = bytes.fromhex("3132333435363738393031323334353637383930")


@pytest.fixture
def rfc_secret():
    return RFC_SECRET


@pytest.fixture
def store(tmp_path):
    return SqliteAccountStore(str(tmp_path / "accounts.db"))


@pytest.fixture
def service(store):
    return AccountService(
        store,
        params=TotpParameters(),
        policy=VerificationPolicy(max_failures=3, interval=60),
        clock=lambda: 1_000_000,
    )


@pytest.fixture
def app(tmp_path):
    return create_app(TestingConfig, DATABASE_FILE=str(tmp_path / "api.db"))


@pytest.fixture
def client(app):
    return app.test_client()
