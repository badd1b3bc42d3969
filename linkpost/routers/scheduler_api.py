from fastapi import APIRouter, Depends
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import timezone
from typing import Optional, Dict, Any
from linkpost.config import settings
from linkpost.db.models import iso
from linkpost.deps import require_worker_key
from linkpost.services.scheduler import run_once

router = APIRouter(prefix="/scheduler", tags=["scheduler"], dependencies=[Depends(require_worker_key)])

JOB_ID = "due_posts"

scheduler: Optional[BackgroundScheduler] = None

def _running() -> bool:
    return bool(scheduler and scheduler.running)

@router.post("/run")
def run_now() -> Dict[str, Any]:
    return run_once()

@router.post("/start")
def start(seconds: Optional[int] = None) -> Dict[str, Any]:
    # local stand-in for the external worker; polls the same contract
    global scheduler
    if _running():
        return {"status": "already-running"}

    interval = seconds or settings.worker_interval_seconds
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(run_once, IntervalTrigger(seconds=interval), id=JOB_ID, replace_existing=True, max_instances=1, coalesce=True)
    scheduler.start()
    return {"status": "started", "interval_seconds": interval}

@router.post("/stop")
def stop() -> Dict[str, Any]:
    if not _running():
        return {"status": "not-running"}
    scheduler.shutdown(wait=False)
    return {"status": "stopped"}

@router.get("/status")
def status() -> Dict[str, Any]:
    job = scheduler.get_job(JOB_ID) if _running() else None
    if job is None:
        return {"running": False, "intervalSeconds": None, "nextRunAt": None}
    next_run = job.next_run_time.astimezone(timezone.utc).replace(tzinfo=None) if job.next_run_time else None
    return {
        "running": True,
        "intervalSeconds": int(job.trigger.interval.total_seconds()),
        "nextRunAt": iso(next_run),
    }
