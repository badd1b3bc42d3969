import secrets
from typing import Generator, Optional

from fastapi import Header
from linkpost.config import settings
from linkpost.db.base import SessionLocal, engine, Base
from linkpost.db import models  # noqa: F401  (registers tables on Base)
from linkpost.errors import ApiError

def init_db() -> None:
    Base.metadata.create_all(bind=engine)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def bearer_user_id(authorization: Optional[str] = Header(None)) -> str:
    """`Authorization: Bearer <userId>` identity used by the web client."""
    if not authorization:
        raise ApiError(401, "Unauthorized")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise ApiError(401, "Unauthorized")
    return token

def require_worker_key(x_n8n_api_key: Optional[str] = Header(None)) -> None:
    expected = settings.n8n_api_key
    # An unconfigured key never authorizes anything
    if not expected or not x_n8n_api_key or not secrets.compare_digest(x_n8n_api_key, expected):
        raise ApiError(401, "Unauthorized")
