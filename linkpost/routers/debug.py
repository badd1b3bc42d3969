from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from linkpost.config import settings
from linkpost.db import crud_accounts, crud_posts
from linkpost.db.models import Account, Post, iso, utcnow
from linkpost.deps import get_db
from linkpost.errors import ApiError

def dev_only() -> None:
    if settings.is_production:
        raise ApiError(404, "Not found")

router = APIRouter(prefix="/api/debug", tags=["debug"], dependencies=[Depends(dev_only)])

@router.get("/posts")
def debug_posts(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Latest posts with the fields the worker query filters on."""
    now = utcnow()
    posts = []
    for p in crud_posts.list_recent(db, limit=20):
        ready = bool(p.schedule_date and p.schedule_date <= now)
        posts.append({
            "id": p.id,
            "userId": p.user_id,
            "content": (p.content[:50] + "...") if len(p.content) > 50 else p.content,
            "status": p.status,
            "type": p.type,
            "platform": p.platform,
            "scheduleDate": iso(p.schedule_date),
            "n8nProcessed": p.n8n_processed,
            "createdAt": iso(p.created_at),
            "isReady": ready,
        })
    return {
        "totalPosts": len(posts),
        "posts": posts,
        "currentTime": iso(now),
        "debug": {
            "scheduledPosts": sum(1 for p in posts if p["status"] == "scheduled"),
            "unprocessedPosts": sum(1 for p in posts if not p["n8nProcessed"]),
            "readyPosts": sum(
                1 for p in posts
                if p["status"] == "scheduled" and not p["n8nProcessed"] and p["isReady"]
            ),
        },
    }

@router.get("/users")
def debug_users(db: Session = Depends(get_db)) -> Dict[str, Any]:
    users = []
    for a in db.query(Account).limit(5).all():
        conns = crud_accounts.connected_accounts(db, a.id)
        users.append({
            "id": a.id,
            "email": a.email,
            "name": f"{a.first_name or ''} {a.last_name or ''}".strip(),
            "linkedinConnected": conns["linkedin"]["connected"],
            "linkedinData": conns["linkedin"],
        })
    return {"users": users, "message": "User LinkedIn connection data"}

@router.post("/update-schedule")
def debug_update_schedule(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Move the first scheduled post five minutes into the past."""
    post = db.query(Post).filter(Post.status == "scheduled").first()
    if not post:
        raise ApiError(404, "No scheduled posts found")
    when = utcnow() - timedelta(minutes=5)
    crud_posts.reschedule(db, post, when)
    return {
        "success": True,
        "message": "Updated post schedule to 5 minutes ago",
        "postId": post.id,
        "newScheduleDate": iso(when),
    }
