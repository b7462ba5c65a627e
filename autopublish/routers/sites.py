from fastapi import APIRouter, Depends
from pydantic import BaseModel, HttpUrl
from typing import Any, Dict, List
from sqlalchemy.orm import Session

from autopublish.deps import get_db
from autopublish.db import crud_sites
from autopublish.errors import AutopublishError
from autopublish.routers.http_errors import to_http
from autopublish.services import wordpress_api

router = APIRouter(prefix="/sites", tags=["sites"])

class SiteIn(BaseModel):
    owner_id: str
    name: str
    url: HttpUrl
    username: str
    app_password: str

def site_dict(site) -> Dict[str, Any]:
    # never echo credentials back
    return {"id": site.id, "owner_id": site.owner_id, "name": site.name, "url": site.url,
            "username": site.username, "created_at": site.created_at.isoformat() if site.created_at else None}

@router.post("")
def register_site(body: SiteIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        site = crud_sites.create_site(db, body.owner_id, body.name, str(body.url), body.username, body.app_password)
    except AutopublishError as e:
        raise to_http(e)
    return {"status": "saved", "site": site_dict(site)}

@router.get("")
def list_sites(owner_id: str, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return [site_dict(s) for s in crud_sites.list_sites(db, owner_id)]

@router.get("/{site_id}/check")
def check_site(site_id: int, owner_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Dry-run: authenticate against the site's REST API and report who we are."""
    try:
        site = crud_sites.get_owned_site(db, site_id, owner_id)
    except AutopublishError as e:
        raise to_http(e)
    try:
        return wordpress_api.check_connection(site)
    except Exception as e:
        return {"ok": False, "error": str(e)}
