from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from linkpost.deps import bearer_user_id, get_db
from linkpost.services import publishing

router = APIRouter(prefix="/api/posts", tags=["posts"])

class PublishIn(BaseModel):
    content: str
    scheduleDate: Optional[datetime] = None
    publishNow: bool = False

@router.post("/publish")
def publish(body: PublishIn, user_id: str = Depends(bearer_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return publishing.create_or_schedule(
        db, user_id, body.content,
        publish_now=body.publishNow,
        schedule_date=body.scheduleDate,
    )

@router.get("")
def list_posts(user_id: str = Depends(bearer_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return publishing.list_posts(db, user_id)
