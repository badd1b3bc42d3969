import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from linkpost.db import crud_accounts
from linkpost.db.models import Account, PROVIDERS, iso
from linkpost.deps import bearer_user_id, get_db
from linkpost.errors import ApiError
from linkpost.linking.messages import OAuthResult
from linkpost.linking.sink import landed, persist_result, read_back
from linkpost.services.publishing import to_utc_naive

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])

class AccountIn(BaseModel):
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    firstName: str = ""
    lastName: str = ""

class ProfileIn(BaseModel):
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    profilePicture: Optional[str] = None
    timezone: Optional[str] = None
    language: Optional[str] = None

class SubscriptionIn(BaseModel):
    plan: str
    endDate: Optional[datetime] = None

def account_to_dict(db: Session, a: Account) -> Dict[str, Any]:
    return {
        "id": a.id,
        "email": a.email,
        "phoneNumber": a.phone_number,
        "profile": {
            "firstName": a.first_name,
            "lastName": a.last_name,
            "profilePicture": a.profile_picture,
        },
        "verification": {
            "emailVerified": a.email_verified,
            "phoneVerified": a.phone_verified,
            "emailVerificationSentAt": iso(a.email_verification_sent_at),
            "phoneVerificationSentAt": iso(a.phone_verification_sent_at),
        },
        "subscription": {
            "plan": a.plan,
            "status": a.subscription_status,
            "startDate": iso(a.subscription_start),
            "endDate": iso(a.subscription_end),
            "postsUsed": a.posts_used,
            "postsLimit": a.posts_limit,
        },
        "preferences": {"timezone": a.timezone, "language": a.language},
        "connectedAccounts": crud_accounts.connected_accounts(db, a.id),
        "remainingPosts": crud_accounts.remaining_posts(a),
        "canCreatePost": crud_accounts.can_create_post(a),
        "isActive": a.is_active,
        "createdAt": iso(a.created_at),
        "lastLoginAt": iso(a.last_login_at),
    }

def current_account(user_id: str = Depends(bearer_user_id), db: Session = Depends(get_db)) -> Account:
    account = crud_accounts.get_account(db, user_id)
    if not account:
        raise ApiError(404, "User not found")
    return account

@router.post("", status_code=201)
def create(body: AccountIn, user_id: str = Depends(bearer_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        a = crud_accounts.create_account(
            db, user_id,
            email=body.email, phone_number=body.phoneNumber,
            first_name=body.firstName, last_name=body.lastName,
        )
    except crud_accounts.AccountExists as e:
        raise ApiError(409, "account_exists", str(e))
    return account_to_dict(db, a)

@router.get("/me")
def read_me(account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    crud_accounts.touch_login(db, account)
    return account_to_dict(db, account)

@router.patch("/me")
def update_me(body: ProfileIn, account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    fields = {
        "email": body.email,
        "first_name": body.firstName,
        "last_name": body.lastName,
        "profile_picture": body.profilePicture,
        "timezone": body.timezone,
        "language": body.language,
    }
    crud_accounts.update_profile(db, account, fields)
    return account_to_dict(db, account)

@router.delete("/me")
def delete_me(account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    crud_accounts.deactivate_account(db, account)
    return {"success": True, "message": "Account deactivated"}

@router.post("/me/connections/{provider}")
def connect(provider: str, body: OAuthResult, account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    if provider not in PROVIDERS:
        raise ApiError(400, "unknown_provider")
    if body.error:
        raise ApiError(400, body.error, body.description or body.message)
    if not body.access_token:
        raise ApiError(400, "missing_access_token")
    persist_result(db, account.id, provider, body)
    if not landed(read_back(db, account.id, provider), body):
        logger.error("[accounts] %s connection for %s did not persist", provider, account.id)
        raise ApiError(500, "failed to persist")
    return {"success": True, "connectedAccounts": crud_accounts.connected_accounts(db, account.id)}

@router.post("/me/subscription")
def subscribe(body: SubscriptionIn, account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        crud_accounts.update_subscription(
            db, account, body.plan,
            end_date=to_utc_naive(body.endDate) if body.endDate else None,
        )
    except ValueError as e:
        raise ApiError(400, "invalid_plan", str(e))
    return account_to_dict(db, account)

@router.post("/me/verification/{channel}/send")
def send_verification(channel: str, account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    if channel not in crud_accounts.VERIFICATION_CHANNELS:
        raise ApiError(400, "unknown_channel")
    try:
        sent_at = crud_accounts.mark_verification_sent(db, account, channel)
    except crud_accounts.VerificationCooldown as e:
        raise ApiError(429, "verification_cooldown", {"retryAfter": e.retry_after})
    return {"success": True, "sentAt": iso(sent_at)}

@router.post("/me/verification/{channel}/confirm")
def confirm_verification(channel: str, account: Account = Depends(current_account), db: Session = Depends(get_db)) -> Dict[str, Any]:
    if channel not in crud_accounts.VERIFICATION_CHANNELS:
        raise ApiError(400, "unknown_channel")
    crud_accounts.mark_verified(db, account, channel)
    return {"success": True, "verification": account_to_dict(db, account)["verification"]}
