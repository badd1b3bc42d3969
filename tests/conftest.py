import json
import os
import re
import tempfile

from cryptography.fernet import Fernet

# Configure before anything imports linkpost.config
_tmpdir = tempfile.mkdtemp(prefix="linkpost-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["LINKEDIN_CLIENT_ID"] = "test-client-id"
os.environ["LINKEDIN_CLIENT_SECRET"] = "test-client-secret"
os.environ["LINKEDIN_REDIRECT_URI"] = ""
os.environ["APP_BASE_URL"] = "http://testserver"
os.environ["N8N_API_KEY"] = "test-n8n-key"
os.environ["APP_ENV"] = "development"

import pytest
from fastapi.testclient import TestClient

from linkpost.db.base import Base, SessionLocal, engine
from linkpost.db import crud_accounts
from linkpost.main import app

WORKER_HEADERS = {"x-n8n-api-key": "test-n8n-key"}


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


def page_payload(html_text: str) -> dict:
    """Pull the JSON payload out of a callback page's script."""
    m = re.search(r"const payload = (.*);", html_text)
    assert m, "callback page carries no payload"
    return json.loads(m.group(1))


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_account(db):
    def _make(
        user_id: str = "user-1",
        connected: bool = True,
        plan: str = "free",
        posts_used: int = 0,
        posts_limit: int | None = None,
        access_token: str = "access-T",
        refresh_token: str | None = None,
        profile_id: str | None = "P",
        expires_in: int | None = 3600,
    ):
        account = crud_accounts.create_account(db, user_id, email=f"{user_id}@example.com")
        if plan != "free":
            crud_accounts.update_subscription(db, account, plan)
        account.posts_used = posts_used
        if posts_limit is not None:
            account.posts_limit = posts_limit
        db.add(account)
        db.commit()
        if connected:
            crud_accounts.connect_oauth_account(
                db, user_id, "linkedin",
                access_token=access_token,
                refresh_token=refresh_token,
                profile_id=profile_id,
                email=f"{user_id}@example.com",
                expires_in=expires_in,
            )
        return account

    return _make
