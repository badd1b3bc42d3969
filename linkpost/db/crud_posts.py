from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from linkpost.db.models import Post, iso, utcnow

def create_post(
    db: Session,
    user_id: str,
    content: str,
    status: str,
    type: str,
    schedule_date: Optional[datetime] = None,
    published_at: Optional[datetime] = None,
    linkedin_post_id: Optional[str] = None,
    n8n_processed: bool = False,
) -> Post:
    obj = Post(
        user_id=user_id,
        content=content,
        status=status,
        type=type,
        schedule_date=schedule_date,
        published_at=published_at,
        linkedin_post_id=linkedin_post_id,
        n8n_processed=n8n_processed,
        created_at=utcnow(),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_post(db: Session, post_id: str) -> Optional[Post]:
    return db.get(Post, post_id)

def list_published(db: Session, user_id: str, limit: int = 10) -> List[Post]:
    return (
        db.query(Post)
        .filter(Post.user_id == user_id, Post.status == "published")
        .order_by(Post.created_at.desc())
        .limit(limit)
        .all()
    )

def list_scheduled(db: Session, user_id: str, limit: int = 10) -> List[Post]:
    return (
        db.query(Post)
        .filter(Post.user_id == user_id, Post.status == "scheduled")
        .order_by(Post.schedule_date.asc())
        .limit(limit)
        .all()
    )

def count_posts(db: Session, user_id: str, status: str) -> int:
    return db.query(Post).filter(Post.user_id == user_id, Post.status == status).count()

def list_unprocessed_scheduled(db: Session, limit: int = 100) -> List[Post]:
    # Equality filters only; the schedule_date cut is applied by the caller
    return (
        db.query(Post)
        .filter(Post.status == "scheduled", Post.n8n_processed.is_(False))
        .limit(limit)
        .all()
    )

def list_recent(db: Session, limit: int = 20) -> List[Post]:
    return db.query(Post).order_by(Post.created_at.desc()).limit(limit).all()

def mark_failed(db: Session, post: Post, error: str) -> Post:
    post.status = "failed"
    post.publish_error = error
    post.n8n_processed = True
    post.processed_at = utcnow()
    db.add(post)
    db.commit()
    return post

def apply_outcome(
    db: Session,
    post: Post,
    status: str,
    linkedin_post_id: Optional[str] = None,
    error: Optional[str] = None,
) -> Post:
    now = utcnow()
    post.n8n_processed = True
    post.processed_at = now
    if status == "published":
        post.status = "published"
        post.published_at = now
        if linkedin_post_id:
            post.linkedin_post_id = linkedin_post_id
    elif status == "failed":
        post.status = "failed"
        post.publish_error = error or "Unknown error"
    db.add(post)
    db.commit()
    return post

def reschedule(db: Session, post: Post, when: datetime) -> Post:
    post.schedule_date = when
    db.add(post)
    db.commit()
    return post

def post_to_dict(p: Post) -> Dict[str, Any]:
    return {
        "id": p.id,
        "userId": p.user_id,
        "content": p.content,
        "platform": p.platform,
        "type": p.type,
        "status": p.status,
        "n8nProcessed": p.n8n_processed,
        "scheduleDate": iso(p.schedule_date),
        "publishedAt": iso(p.published_at),
        "processedAt": iso(p.processed_at),
        "linkedinPostId": p.linkedin_post_id,
        "publishError": p.publish_error,
        "createdAt": iso(p.created_at),
    }
