from datetime import timedelta
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Any, Dict
from sqlalchemy.orm import Session

from autopublish.deps import get_controller, get_db
from autopublish.db import crud
from autopublish.errors import AutopublishError
from autopublish.routers.http_errors import to_http
from autopublish.services.controller import AutomationController
from autopublish.services.next_run import utc_now

router = APIRouter(prefix="/articles", tags=["articles"])

class OwnerIn(BaseModel):
    owner_id: str

def _iso(value):
    return value.isoformat() if value else None

def _public_image(url):
    # inline data: images can be megabytes; they only travel to WordPress
    return None if not url or url.startswith("data:") else url

def article_dict(a) -> Dict[str, Any]:
    return {
        "id": a.id,
        "schedule_id": a.schedule_id,
        "title": a.title,
        "excerpt": a.excerpt,
        "content": a.content,
        "category": a.category,
        "tags": list(a.tags or []),
        "featured_image_url": _public_image(a.featured_image_url),
        "has_featured_image": bool(a.featured_image_url),
        "status": a.status.value,
        "scheduled_for": _iso(a.scheduled_for),
        "published_at": _iso(a.published_at),
        "external_post_id": a.external_post_id,
        "published_url": a.published_url,
        "error_message": a.error_message,
        "created_at": _iso(a.created_at),
    }

@router.get("/{article_id}")
def get_article(article_id: int, owner_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return article_dict(crud.get_owned_article(db, article_id, owner_id))
    except AutopublishError as e:
        raise to_http(e)

@router.post("/{article_id}/publish")
def publish_article(
    article_id: int,
    body: OwnerIn,
    db: Session = Depends(get_db),
    controller: AutomationController = Depends(get_controller),
) -> Dict[str, Any]:
    """Publish one ready article now, whatever its scheduled time."""
    try:
        crud.get_owned_article(db, article_id, body.owner_id)
        article = controller.publish_article(article_id)
    except AutopublishError as e:
        raise to_http(e)
    return {"status": article.status.value, "article": article_dict(article)}

@router.delete("/failed")
def purge_failed(
    owner_id: str,
    older_than_days: int = Query(30, ge=1),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    deleted = crud.purge_failed_articles(db, owner_id, utc_now() - timedelta(days=older_than_days))
    return {"status": "purged", "deleted": deleted}
