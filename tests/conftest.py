import pytest

from auth.models import TokenPair
from tests.rowt_helpers import FakeRowtServer


@pytest.fixture
def stale_pair() -> TokenPair:
    return TokenPair(access_token="at0", refresh_token="rt0")


@pytest.fixture
def fake_server() -> FakeRowtServer:
    return FakeRowtServer()


@pytest.fixture(autouse=True)
def _clean_rowt_env(monkeypatch) -> None:
    for key in (
        "ROWT_BASE_URL",
        "ROWT_DEBUG",
        "ROWT_TIMEOUT",
        "ROWT_REFRESH_TIMEOUT",
        "ROWT_TOKEN_STORE_PATH",
    ):
        monkeypatch.delenv(key, raising=False)
