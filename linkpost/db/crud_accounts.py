# linkpost/db/crud_accounts.py
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from linkpost.db.models import Account, ConnectedAccount, PLAN_LIMITS, PROVIDERS, iso, utcnow
from linkpost.db import token_crypto

logger = logging.getLogger(__name__)

VERIFICATION_CHANNELS = ("email", "phone")
VERIFICATION_COOLDOWN_SECONDS = 60

class AccountExists(Exception):
    pass

class VerificationCooldown(Exception):
    def __init__(self, retry_after: int):
        super().__init__(f"Verification resent too soon; retry in {retry_after}s")
        self.retry_after = retry_after

def create_account(
    db: Session,
    user_id: str,
    email: str | None = None,
    phone_number: str | None = None,
    first_name: str = "",
    last_name: str = "",
) -> Account:
    if db.get(Account, user_id):
        raise AccountExists("User with this ID already exists")
    if phone_number and get_account_by_phone(db, phone_number):
        raise AccountExists("User with this phone number already exists")
    now = utcnow()
    a = Account(
        id=user_id,
        email=email,
        phone_number=phone_number,
        first_name=first_name or "",
        last_name=last_name or "",
        plan="free",
        subscription_status="active",
        posts_used=0,
        posts_limit=PLAN_LIMITS["free"],
        created_at=now,
        last_login_at=now,
        last_active_at=now,
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    logger.info("[accounts] created %s", user_id)
    return a

def get_account(db: Session, user_id: str, include_inactive: bool = False) -> Account | None:
    a = db.get(Account, user_id)
    if a is None or (not a.is_active and not include_inactive):
        return None
    return a

def get_account_by_phone(db: Session, phone_number: str) -> Account | None:
    return db.query(Account).filter(Account.phone_number == phone_number).first()

def touch_login(db: Session, account: Account) -> None:
    now = utcnow()
    account.last_login_at = now
    account.last_active_at = now
    db.add(account)
    db.commit()

def update_profile(db: Session, account: Account, fields: Dict[str, Any]) -> Account:
    allowed = {"email", "first_name", "last_name", "profile_picture", "timezone", "language"}
    for key, value in fields.items():
        if key in allowed and value is not None:
            setattr(account, key, value)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account

def update_subscription(db: Session, account: Account, plan: str, end_date: datetime | None = None) -> Account:
    if plan not in PLAN_LIMITS:
        raise ValueError(f"Unknown plan: {plan}")
    account.plan = plan
    account.subscription_status = "active"
    account.posts_limit = PLAN_LIMITS[plan]
    if plan == "premium":
        account.subscription_start = utcnow()
        if end_date:
            account.subscription_end = end_date
    db.add(account)
    db.commit()
    db.refresh(account)
    return account

def deactivate_account(db: Session, account: Account) -> None:
    account.is_active = False
    db.add(account)
    db.commit()

# --- verification flags ---

def mark_verification_sent(db: Session, account: Account, channel: str, now: datetime | None = None) -> datetime:
    if channel not in VERIFICATION_CHANNELS:
        raise ValueError(f"Unknown verification channel: {channel}")
    now = now or utcnow()
    attr = f"{channel}_verification_sent_at"
    last = getattr(account, attr)
    if last is not None:
        elapsed = (now - last).total_seconds()
        if elapsed < VERIFICATION_COOLDOWN_SECONDS:
            raise VerificationCooldown(int(VERIFICATION_COOLDOWN_SECONDS - elapsed) + 1)
    setattr(account, attr, now)
    db.add(account)
    db.commit()
    return now

def mark_verified(db: Session, account: Account, channel: str) -> None:
    if channel not in VERIFICATION_CHANNELS:
        raise ValueError(f"Unknown verification channel: {channel}")
    setattr(account, f"{channel}_verified", True)
    db.add(account)
    db.commit()

# --- quota ---

def can_create_post(account: Account) -> bool:
    if account.plan == "premium":
        return account.subscription_status == "active"
    return account.posts_used < account.posts_limit

def remaining_posts(account: Account) -> int:
    if account.plan == "premium":
        return -1
    return max(0, account.posts_limit - account.posts_used)

def increment_posts_used(db: Session, user_id: str) -> int | None:
    # Plain read-modify-write: concurrent publishes for one account can race.
    a = db.get(Account, user_id)
    if not a:
        return None
    a.posts_used = (a.posts_used or 0) + 1
    db.add(a)
    db.commit()
    return a.posts_used

# --- connected accounts ---

def get_connection(db: Session, user_id: str, provider: str) -> ConnectedAccount | None:
    return (
        db.query(ConnectedAccount)
        .filter(ConnectedAccount.account_id == user_id, ConnectedAccount.provider == provider)
        .first()
    )

def connect_oauth_account(
    db: Session,
    user_id: str,
    provider: str,
    access_token: str,
    refresh_token: str | None = None,
    profile_id: str | None = None,
    email: str | None = None,
    scope: str | None = None,
    expires_in: int | None = None,
) -> ConnectedAccount:
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider}")
    row = get_connection(db, user_id, provider)
    if row is None:
        row = ConnectedAccount(account_id=user_id, provider=provider)
    now = utcnow()
    row.connected = True
    row.access_token_encrypted = token_crypto.encrypt_token(access_token)
    row.refresh_token_encrypted = token_crypto.encrypt_optional(refresh_token)
    row.profile_id = profile_id
    row.email = email
    row.scope = scope
    row.expires_at = now + timedelta(seconds=expires_in) if expires_in else None
    row.connected_at = now
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("[accounts] %s connected for %s", provider, user_id)
    return row

def set_profile_id(db: Session, user_id: str, provider: str, profile_id: str) -> None:
    row = get_connection(db, user_id, provider)
    if not row:
        return
    row.profile_id = profile_id
    db.add(row)
    db.commit()

def update_access_token_only(db: Session, user_id: str, provider: str, new_access_token: str, expires_in: int) -> None:
    row = get_connection(db, user_id, provider)
    if not row:
        return
    row.access_token_encrypted = token_crypto.encrypt_token(new_access_token)
    row.expires_at = utcnow() + timedelta(seconds=expires_in)
    db.add(row)
    db.commit()

def is_token_expiring(row: ConnectedAccount, seconds: int = 300) -> bool:
    return bool(row.expires_at and (row.expires_at - utcnow()).total_seconds() < seconds)

def access_token_for(db: Session, user_id: str, provider: str = "linkedin") -> Optional[str]:
    """Current plaintext access token, or None when not connected or unreadable."""
    row = get_connection(db, user_id, provider)
    if not row or not row.connected or not row.access_token_encrypted:
        return None
    try:
        return token_crypto.decrypt_token(row.access_token_encrypted)
    except Exception:
        return None

def connection_view(row: ConnectedAccount | None, include_tokens: bool = False) -> Dict[str, Any]:
    if row is None or not row.connected:
        return {"connected": False}
    out: Dict[str, Any] = {
        "connected": True,
        "profileId": row.profile_id,
        "email": row.email,
        "scope": row.scope,
        "connectedAt": iso(row.connected_at),
        "expiresAt": iso(row.expires_at),
    }
    if include_tokens:
        out["accessToken"] = token_crypto.decrypt_optional(row.access_token_encrypted)
        out["refreshToken"] = token_crypto.decrypt_optional(row.refresh_token_encrypted)
    return out

def connected_accounts(db: Session, user_id: str, include_tokens: bool = False) -> Dict[str, Dict[str, Any]]:
    """Per-provider view of connections, re-read from the store."""
    return {p: connection_view(get_connection(db, user_id, p), include_tokens) for p in PROVIDERS}
