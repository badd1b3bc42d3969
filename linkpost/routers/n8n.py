from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from linkpost.deps import get_db, require_worker_key
from linkpost.services import worker

router = APIRouter(prefix="/api/n8n", tags=["n8n"], dependencies=[Depends(require_worker_key)])

class OutcomeIn(BaseModel):
    postId: Optional[str] = None
    status: Optional[str] = None
    linkedinPostId: Optional[str] = None
    error: Optional[str] = None

@router.get("/posts")
def due_posts(db: Session = Depends(get_db)) -> Dict[str, Any]:
    posts = worker.list_due_posts(db)
    return {"posts": posts, "count": len(posts)}

@router.post("/posts")
def report(body: OutcomeIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    return worker.report_outcome(
        db, body.postId, body.status,
        linkedin_post_id=body.linkedinPostId,
        error=body.error,
    )
