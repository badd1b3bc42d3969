from typing import Any, Dict, List
import logging

from linkpost.db.base import session_scope
from linkpost.services import linkedin_api, worker

logger = logging.getLogger(__name__)

def publish_due(item: Dict[str, Any]) -> Dict[str, Any]:
    """Publish one listed post the way the external worker does."""
    if not item.get("linkedinProfileId"):
        return {"status": "failed", "error": "LinkedIn profile id unknown; reconnect LinkedIn"}
    ok, ref = linkedin_api.post_text(
        item["linkedinAccessToken"],
        linkedin_api.person_urn(item["linkedinProfileId"]),
        item["content"],
    )
    if ok:
        return {"status": "published", "linkedinPostId": linkedin_api.post_id_from_response(ref)}
    return {"status": "failed", "error": str(ref.get("message") or ref.get("body") or ref)}

def run_once() -> dict:
    # each job run gets its own session
    with session_scope() as db:
        due = worker.list_due_posts(db)
        if not due:
            return {"status": "no-due-posts"}

        results: List[Dict[str, Any]] = []
        for item in due:
            outcome = publish_due(item)
            worker.report_outcome(
                db, item["id"], outcome["status"],
                linkedin_post_id=outcome.get("linkedinPostId"),
                error=outcome.get("error"),
            )
            results.append({"post_id": item["id"], **outcome})
        logger.info("[scheduler] processed %d post(s)", len(results))
        return {"status": "processed", "count": len(results), "results": results}
