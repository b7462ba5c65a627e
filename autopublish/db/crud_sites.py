from typing import List, Tuple
from sqlalchemy.orm import Session

from autopublish.db.models import WordPressSite
from autopublish.db import credential_crypto
from autopublish.errors import AuthorizationError, NotFoundError

def create_site(db: Session, owner_id: str, name: str, url: str, username: str, app_password: str) -> WordPressSite:
    row = WordPressSite(
        owner_id=owner_id,
        name=name,
        url=url.rstrip("/"),
        username=username,
        app_password_encrypted=credential_crypto.encrypt_app_password(app_password),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def get_site(db: Session, site_id: int) -> WordPressSite:
    site = db.get(WordPressSite, site_id)
    if site is None:
        raise NotFoundError("site", site_id)
    return site

def get_owned_site(db: Session, site_id: int, owner_id: str) -> WordPressSite:
    site = get_site(db, site_id)
    if site.owner_id != owner_id:
        raise AuthorizationError("site", site_id, owner_id)
    return site

def list_sites(db: Session, owner_id: str) -> List[WordPressSite]:
    return (
        db.query(WordPressSite)
        .filter(WordPressSite.owner_id == owner_id)
        .order_by(WordPressSite.id.desc())
        .all()
    )

def site_credentials(site: WordPressSite) -> Tuple[str, str]:
    return site.username, credential_crypto.decrypt_app_password(site.app_password_encrypted, site.id)
