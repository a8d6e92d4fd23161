from fastapi import APIRouter, HTTPException, Depends
from app.services.auth_service import get_current_user_id

router = APIRouter()


@router.post("/purge")
def trigger_purge(user_id: str = Depends(get_current_user_id)):
    """Queue the retention purge now instead of waiting for its schedule."""
    try:
        from app.tasks.cleanup import purge_expired_attachments
        task = purge_expired_attachments.delay()
        return {"status": "queued", "task_id": task.id}
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/orphan-scan")
def trigger_orphan_scan(user_id: str = Depends(get_current_user_id)):
    """Queue an orphan scan of the current user's Drive folder."""
    try:
        from app.tasks.reconcile import scan_orphans
        task = scan_orphans.delay(user_id=user_id)
        return {"status": "queued", "task_id": task.id}
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
