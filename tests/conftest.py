import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="campaign-engine-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["META_SYSTEM_USER_TOKEN"] = ""

from campaign_engine.auth.dependencies import AuthContext, get_current_user  # noqa: E402
from campaign_engine.db.base import SessionLocal, init_db  # noqa: E402
from campaign_engine.db.deps import get_session  # noqa: E402
from campaign_engine.db.models import AgentState, MetaConnection  # noqa: E402
from campaign_engine.db.repositories.meta_connections import MetaConnectionsRepository  # noqa: E402
from campaign_engine.main import app  # noqa: E402
from campaign_engine.services.meta_ads import MetaAdsError  # noqa: E402

TEST_EMAIL = "owner@example.com"


@pytest.fixture(scope="session", autouse=True)
def create_tables() -> None:
    init_db()


@pytest.fixture()
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.query(AgentState).delete()
        session.query(MetaConnection).delete()
        session.commit()
        session.close()


@pytest.fixture()
def meta_connection(db_session) -> MetaConnection:
    return MetaConnectionsRepository(db_session).create(
        email=TEST_EMAIL,
        fb_business_id="biz_1",
        fb_ad_account_id="act_123",
        fb_page_id="page_1",
        ig_business_id="ig_1",
        access_token="user-token",
        business_name="Sunrise Laundry",
        business_category="Laundry",
        business_website="https://sunrise.example.com",
        business_phone="9876543210",
    )


def make_meta_error(message: str, *, code: Optional[int] = 100, subcode: Optional[int] = None) -> MetaAdsError:
    payload = {"error": {"message": message, "code": code, "error_subcode": subcode}}
    return MetaAdsError(message, status_code=400, error_payload=payload)


class FakeMetaClient:
    """Records every Graph call. Queue failures or canned responses per method name."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, list[Optional[Exception]]] = {}
        self.responses: dict[str, list[dict[str, Any]]] = {}
        self.statuses: list[Any] = []
        self._counter = 0

    def fail(self, method: str, *errors: Optional[Exception]) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def respond(self, method: str, *responses: dict[str, Any]) -> None:
        self.responses.setdefault(method, []).extend(responses)

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def _call(self, method: str, prefix: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append((method, kwargs))
        queue = self.failures.get(method)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error
        canned = self.responses.get(method)
        if canned:
            return canned.pop(0)
        self._counter += 1
        return {"id": f"{prefix}_{self._counter}"}

    def get_ad_account(self, *, ad_account_id: str, **_kwargs: Any) -> dict[str, Any]:
        return self._call("get_ad_account", "act", ad_account_id=ad_account_id)

    def create_campaign(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("create_campaign", "campaign", ad_account_id=ad_account_id, payload=payload)

    def create_adset(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("create_adset", "adset", ad_account_id=ad_account_id, payload=payload)

    def create_adcreative(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("create_adcreative", "creative", ad_account_id=ad_account_id, payload=payload)

    def create_ad(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("create_ad", "ad", ad_account_id=ad_account_id, payload=payload)

    def create_media_container(self, *, instagram_id: str, image_url: str, caption: str) -> dict[str, Any]:
        return self._call(
            "create_media_container", "container", instagram_id=instagram_id, image_url=image_url, caption=caption
        )

    def get_media_container_status(self, *, container_id: str) -> dict[str, Any]:
        self.calls.append(("get_media_container_status", {"container_id": container_id}))
        status = self.statuses.pop(0) if self.statuses else "FINISHED"
        if isinstance(status, Exception):
            raise status
        return {"status_code": status, "id": container_id}

    def publish_media(self, *, instagram_id: str, creation_id: str) -> dict[str, Any]:
        return self._call("publish_media", "media", instagram_id=instagram_id, creation_id=creation_id)


@pytest.fixture()
def fake_meta() -> FakeMetaClient:
    return FakeMetaClient()


@pytest.fixture()
def meta_error():
    return make_meta_error


@pytest.fixture()
def auth_context() -> AuthContext:
    return AuthContext(email=TEST_EMAIL)


@pytest.fixture()
def override_dependencies(db_session, auth_context):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    def get_user_override():
        return auth_context

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = get_user_override
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client
