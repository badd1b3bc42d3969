# linkpost/services/publishing.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from linkpost.db import crud_accounts, crud_posts, token_crypto
from linkpost.db.models import Account, utcnow
from linkpost.errors import ApiError, ProviderError
from linkpost.services import linkedin_api

logger = logging.getLogger(__name__)

PROVIDER = "linkedin"

def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def _load_account(db: Session, user_id: str) -> Account:
    account = crud_accounts.get_account(db, user_id)
    if not account:
        raise ApiError(404, "User not found")
    return account

def get_fresh_access_token(db: Session, user_id: str) -> str:
    row = crud_accounts.get_connection(db, user_id, PROVIDER)
    if not row or not row.connected or not row.access_token_encrypted:
        raise ApiError(400, "LinkedIn not connected")

    if crud_accounts.is_token_expiring(row):
        if not row.refresh_token_encrypted:
            raise ApiError(400, "LinkedIn token expired; please reconnect your LinkedIn account.")
        try:
            plain_refresh = token_crypto.decrypt_token(row.refresh_token_encrypted)
            resp = linkedin_api.exchange_refresh_for_token(plain_refresh)
            new_token = resp.get("access_token")
            if not new_token:
                raise ProviderError("token refresh", 200, "no access_token in refresh response")
            crud_accounts.update_access_token_only(db, user_id, PROVIDER, new_token, resp.get("expires_in", 3600))
            logger.info("[publish] refreshed LinkedIn token for %s", user_id)
            return new_token
        except Exception as e:
            logger.warning("[publish] refresh failed for %s: %s", user_id, e)
            raise ApiError(400, "LinkedIn token expired and refresh failed; please reconnect your LinkedIn account.")

    try:
        return token_crypto.decrypt_token(row.access_token_encrypted)
    except Exception:
        raise ApiError(400, "Stored LinkedIn token is unreadable; please reconnect your LinkedIn account.")

def resolve_profile_id(db: Session, user_id: str, access_token: str) -> str:
    """Stored profile id, or the userinfo `sub` fetched and persisted for next time."""
    row = crud_accounts.get_connection(db, user_id, PROVIDER)
    if row and row.profile_id:
        return row.profile_id
    info = linkedin_api.fetch_profile(access_token)
    profile_id = info["profile"].get("sub")
    if not profile_id:
        raise ApiError(400, "Could not resolve LinkedIn profile id; please reconnect your LinkedIn account.")
    crud_accounts.set_profile_id(db, user_id, PROVIDER, profile_id)
    return profile_id

def create_or_schedule(
    db: Session,
    user_id: str,
    content: str,
    publish_now: bool = False,
    schedule_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    if not content or not content.strip():
        raise ApiError(400, "Content is required")

    account = _load_account(db, user_id)
    access_token = get_fresh_access_token(db, user_id)
    if not crud_accounts.can_create_post(account):
        raise ApiError(400, "No posts remaining", "Upgrade to premium to keep publishing.")

    if publish_now:
        profile_id = resolve_profile_id(db, user_id, access_token)
        ok, ref = linkedin_api.post_text(access_token, linkedin_api.person_urn(profile_id), content)
        if not ok:
            logger.error("[publish] LinkedIn rejected post for %s: %s", user_id, ref)
            raise ApiError(500, "Failed to publish to LinkedIn", ref)

        linkedin_post_id = linkedin_api.post_id_from_response(ref)
        # Not transactional with the provider call: a failure below leaves a live post uncounted
        crud_accounts.increment_posts_used(db, user_id)
        now = utcnow()
        crud_posts.create_post(
            db, user_id, content,
            status="published", type="immediate",
            published_at=now, linkedin_post_id=linkedin_post_id,
            n8n_processed=True,
        )
        return {
            "success": True,
            "message": "Post published to LinkedIn successfully",
            "postId": linkedin_post_id,
        }

    if schedule_date:
        post = crud_posts.create_post(
            db, user_id, content,
            status="scheduled", type="scheduled",
            schedule_date=to_utc_naive(schedule_date),
        )
        logger.info("[publish] scheduled post %s for %s at %s", post.id, user_id, post.schedule_date)
        return {
            "success": True,
            "message": "Post scheduled successfully",
            "scheduledPostId": post.id,
        }

    raise ApiError(400, "Invalid request")

def list_posts(db: Session, user_id: str) -> Dict[str, Any]:
    published = crud_posts.list_published(db, user_id)
    scheduled = crud_posts.list_scheduled(db, user_id)
    return {
        "publishedPosts": [crud_posts.post_to_dict(p) for p in published],
        "scheduledPosts": [crud_posts.post_to_dict(p) for p in scheduled],
        "stats": {
            "totalPublished": crud_posts.count_posts(db, user_id, "published"),
            "totalScheduled": crud_posts.count_posts(db, user_id, "scheduled"),
        },
    }
