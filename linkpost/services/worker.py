"""Pull-model contract for the external automation worker (n8n).

The worker polls for due posts, publishes them itself with the tokens handed
out here, and reports each outcome back. Reports carry no idempotency key:
reporting ``published`` twice for one post charges the owner's quota twice.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from linkpost.db import crud_accounts, crud_posts
from linkpost.db.models import iso, utcnow
from linkpost.errors import ApiError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
OUTCOME_STATUSES = ("published", "failed")
NOT_CONNECTED_ERROR = "LinkedIn account not connected or token expired"


def list_due_posts(db: Session, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or utcnow()
    ready: List[Dict[str, Any]] = []
    # The time cut is applied in memory over a bounded page of equality matches
    for post in crud_posts.list_unprocessed_scheduled(db, limit=PAGE_SIZE):
        if not post.schedule_date or post.schedule_date > now:
            continue

        access_token = crud_accounts.access_token_for(db, post.user_id, "linkedin")
        if not access_token:
            crud_posts.mark_failed(db, post, NOT_CONNECTED_ERROR)
            logger.warning("[n8n] post %s failed during listing: no LinkedIn token for %s", post.id, post.user_id)
            continue

        conn = crud_accounts.get_connection(db, post.user_id, "linkedin")
        ready.append({
            "id": post.id,
            "userId": post.user_id,
            "content": post.content,
            "scheduleDate": iso(post.schedule_date),
            "linkedinAccessToken": access_token,
            "linkedinProfileId": conn.profile_id if conn else None,
            "platform": post.platform,
            "createdAt": iso(post.created_at),
        })
    logger.info("[n8n] %d post(s) due", len(ready))
    return ready


def report_outcome(
    db: Session,
    post_id: Optional[str],
    status: Optional[str],
    linkedin_post_id: Optional[str] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    if not post_id or not status:
        raise ApiError(400, "Missing required fields")
    if status not in OUTCOME_STATUSES:
        raise ApiError(400, "invalid_status", f"status must be one of {', '.join(OUTCOME_STATUSES)}")

    post = crud_posts.get_post(db, post_id)
    if not post:
        raise ApiError(404, "Post not found")

    crud_posts.apply_outcome(db, post, status, linkedin_post_id=linkedin_post_id, error=error)
    if status == "published":
        crud_accounts.increment_posts_used(db, post.user_id)
    logger.info("[n8n] post %s reported %s", post_id, status)
    return {"success": True, "message": f"Post {status} successfully"}
