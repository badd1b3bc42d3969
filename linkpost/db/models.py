import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from linkpost.db.base import Base

PROVIDERS = ("linkedin", "google")
PLAN_LIMITS = {"free": 1, "premium": -1}  # -1 means unlimited

def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value else None

def _new_id() -> str:
    return uuid.uuid4().hex

class Account(Base):
    __tablename__ = "accounts"
    id = Column(String(128), primary_key=True, index=True)
    email = Column(String(320), nullable=True)
    phone_number = Column(String(32), unique=True, nullable=True)

    first_name = Column(String(128), default="")
    last_name = Column(String(128), default="")
    profile_picture = Column(String(1024), default="")

    email_verified = Column(Boolean, default=False, nullable=False)
    phone_verified = Column(Boolean, default=False, nullable=False)
    email_verification_sent_at = Column(DateTime, nullable=True)
    phone_verification_sent_at = Column(DateTime, nullable=True)

    plan = Column(String(16), default="free", nullable=False)
    subscription_status = Column(String(16), default="active", nullable=False)
    subscription_start = Column(DateTime, nullable=True)
    subscription_end = Column(DateTime, nullable=True)
    posts_used = Column(Integer, default=0, nullable=False)
    posts_limit = Column(Integer, default=PLAN_LIMITS["free"], nullable=False)

    timezone = Column(String(64), default="UTC")
    language = Column(String(16), default="en")

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime, default=utcnow)
    last_active_at = Column(DateTime, default=utcnow)

    connections = relationship("ConnectedAccount", back_populates="account", cascade="all, delete-orphan")

class ConnectedAccount(Base):
    __tablename__ = "connected_accounts"
    __table_args__ = (UniqueConstraint("account_id", "provider", name="uq_connected_provider"),)
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(128), ForeignKey("accounts.id"), nullable=False, index=True)
    provider = Column(String(16), nullable=False)
    connected = Column(Boolean, default=False, nullable=False)
    access_token_encrypted = Column(Text, nullable=True)
    refresh_token_encrypted = Column(Text, nullable=True)
    profile_id = Column(String(128), nullable=True)
    email = Column(String(320), nullable=True)
    scope = Column(String(512), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    connected_at = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="connections")

class Post(Base):
    __tablename__ = "posts"
    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(128), ForeignKey("accounts.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    platform = Column(String(32), default="linkedin", nullable=False)
    type = Column(String(16), nullable=False)              # 'immediate' | 'scheduled'
    status = Column(String(16), nullable=False, index=True)  # 'scheduled' | 'published' | 'failed'
    schedule_date = Column(DateTime, nullable=True)
    # worker coordination: False until the external worker records an outcome
    n8n_processed = Column(Boolean, default=False, nullable=False, index=True)
    processed_at = Column(DateTime, nullable=True)
    published_at = Column(DateTime, nullable=True)
    linkedin_post_id = Column(String(256), nullable=True)
    publish_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
