from typing import Any, Dict

from sqlalchemy.orm import Session

from linkpost.db import crud_accounts
from linkpost.db.base import session_scope
from linkpost.linking.messages import OAuthResult

def persist_result(db: Session, user_id: str, provider: str, result: OAuthResult) -> None:
    crud_accounts.connect_oauth_account(
        db, user_id, provider,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        profile_id=result.profile_id,
        email=result.contact_email,
        scope=result.scope,
        expires_in=result.expires_in,
    )

def read_back(db: Session, user_id: str, provider: str) -> Dict[str, Any]:
    db.expire_all()
    return crud_accounts.connected_accounts(db, user_id, include_tokens=True)[provider]

def landed(stored: Dict[str, Any], result: OAuthResult) -> bool:
    return bool(stored.get("connected")) and stored.get("accessToken") == result.access_token

class StoreSink:
    """Account Store access for the coordinator; each call uses its own session."""

    def persist(self, user_id: str, provider: str, result: OAuthResult) -> None:
        with session_scope() as db:
            persist_result(db, user_id, provider, result)

    def read_connection(self, user_id: str, provider: str) -> Dict[str, Any]:
        with session_scope() as db:
            return read_back(db, user_id, provider)
