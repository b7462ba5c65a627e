from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Any, Dict, List
from sqlalchemy.orm import Session

from autopublish.deps import get_controller, get_db
from autopublish.db import crud
from autopublish.db.models import Frequency
from autopublish.errors import AutopublishError
from autopublish.routers.articles import article_dict, OwnerIn
from autopublish.routers.http_errors import to_http
from autopublish.services.controller import AutomationController
from autopublish.services.next_run import utc_now

router = APIRouter(prefix="/schedules", tags=["schedules"])

class ScheduleIn(BaseModel):
    owner_id: str
    site_id: int
    frequency: Frequency
    time_of_day: str = "09:00"
    timezone: str = "UTC"

def schedule_dict(s) -> Dict[str, Any]:
    return {
        "id": s.id,
        "owner_id": s.owner_id,
        "site_id": s.target_site_id,
        "frequency": s.frequency.value,
        "time_of_day": s.time_of_day,
        "timezone": s.timezone,
        "is_active": s.is_active,
        "has_profile": bool(s.profile),
        "profile": s.profile,
        "last_analyzed_at": s.last_analyzed_at.isoformat() if s.last_analyzed_at else None,
        "next_run_at": s.next_run_at.isoformat() if s.next_run_at else None,
    }

@router.post("")
def create_schedule(
    body: ScheduleIn,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    try:
        s = crud.create_schedule(
            db, body.owner_id, body.site_id, body.frequency, body.time_of_day, body.timezone, utc_now(),
        )
    except AutopublishError as e:
        raise to_http(e)
    automation = controller.on_schedule_created()
    return {"status": "created", "schedule": schedule_dict(s), "automation": automation}

@router.get("")
def list_schedules(owner_id: str, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return [schedule_dict(s) for s in crud.list_schedules(db, owner_id)]

@router.get("/{schedule_id}")
def get_schedule(schedule_id: int, owner_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return schedule_dict(crud.get_owned_schedule(db, schedule_id, owner_id))
    except AutopublishError as e:
        raise to_http(e)

@router.post("/{schedule_id}/analyze")
def analyze_schedule(
    schedule_id: int,
    body: OwnerIn,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    try:
        s = crud.get_owned_schedule(db, schedule_id, body.owner_id)
        profile = controller.pipeline.analyze(db, s)
    except AutopublishError as e:
        raise to_http(e)
    return {"status": "analyzed", "profile": profile.model_dump()}

@router.post("/{schedule_id}/generate")
def generate_now(
    schedule_id: int,
    body: OwnerIn,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    """Generate one article immediately; the schedule's next run is left alone."""
    try:
        s = crud.get_owned_schedule(db, schedule_id, body.owner_id)
        article = controller.pipeline.generate(db, s)
    except AutopublishError as e:
        raise to_http(e)
    return {"status": "generated", "article": article_dict(article)}

@router.post("/{schedule_id}/deactivate")
def deactivate_schedule(
    schedule_id: int,
    body: OwnerIn,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    try:
        s = crud.deactivate_schedule(db, crud.get_owned_schedule(db, schedule_id, body.owner_id))
    except AutopublishError as e:
        raise to_http(e)
    automation = controller.on_schedule_removed()
    return {"status": "deactivated", "schedule": schedule_dict(s), "automation": automation}

@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    owner_id: str,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    try:
        crud.delete_schedule(db, crud.get_owned_schedule(db, schedule_id, owner_id))
    except AutopublishError as e:
        raise to_http(e)
    automation = controller.on_schedule_removed()
    return {"status": "deleted", "id": schedule_id, "automation": automation}

@router.get("/{schedule_id}/articles")
def list_articles(schedule_id: int, owner_id: str, limit: int = 50, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    try:
        crud.get_owned_schedule(db, schedule_id, owner_id)
    except AutopublishError as e:
        raise to_http(e)
    return [article_dict(a) for a in crud.list_articles_for_schedule(db, schedule_id, limit=limit)]
