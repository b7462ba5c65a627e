# autopublish/services/wordpress_api.py
import base64
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from autopublish.config import settings
from autopublish.db.models import WordPressSite
from autopublish.db.crud_sites import site_credentials
from autopublish.errors import PublishError
from autopublish.services.schemas import PublishResult

logger = logging.getLogger(__name__)

API_PREFIX = "/wp-json/wp/v2"
RETRY_STATUS = (429, 500, 502, 503, 504)

def _endpoint(site: WordPressSite, path: str) -> str:
    return f"{site.url}{API_PREFIX}{path}"

def _auth_header(site: WordPressSite) -> Dict[str, str]:
    username, password = site_credentials(site)
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return {"Authorization": f"Basic {token}"}

def _error_message(resp: httpx.Response) -> str:
    # WordPress errors look like {"code": "...", "message": "...", "data": {...}}
    try:
        body = resp.json()
        if isinstance(body, dict) and body.get("message"):
            code = body.get("code")
            return f"{code}: {body['message']}" if code else body["message"]
    except ValueError:
        pass
    return f"HTTP {resp.status_code}: {resp.text[:300]}"

# Helper: retry logic for idempotent reads
def request_with_retry(method: str, url: str, max_attempts: int = 3, backoff: float = 2, **kwargs) -> httpx.Response:
    for attempt in range(1, max_attempts + 1):
        try:
            with httpx.Client(timeout=httpx.Timeout(settings.wordpress_timeout, connect=5)) as c:
                resp = c.request(method, url, **kwargs)
            if resp.status_code in RETRY_STATUS and attempt < max_attempts:
                logger.warning("[WordPress] %s attempt %d got %d, retrying...", url, attempt, resp.status_code)
                time.sleep(backoff * attempt)
                continue
            return resp
        except httpx.RequestError as e:
            logger.warning("[WordPress] request error on %s: %s", url, e)
            if attempt < max_attempts:
                time.sleep(backoff * attempt)
                continue
            raise
    raise RuntimeError(f"WordPress API failed after {max_attempts} attempts")

def list_recent_posts(site: WordPressSite, limit: int = 50) -> List[Dict[str, Any]]:
    resp = request_with_retry(
        "GET", _endpoint(site, "/posts"),
        headers=_auth_header(site),
        params={"per_page": min(limit, 100), "status": "publish", "_fields": "id,title,excerpt,content,categories,date"},
    )
    if resp.status_code != 200:
        raise RuntimeError(f"Failed to fetch posts: {_error_message(resp)}")
    return resp.json()

def list_categories(site: WordPressSite) -> List[Dict[str, Any]]:
    resp = request_with_retry(
        "GET", _endpoint(site, "/categories"),
        headers=_auth_header(site),
        params={"per_page": 100, "_fields": "id,name,count"},
    )
    if resp.status_code != 200:
        raise RuntimeError(f"Failed to fetch categories: {_error_message(resp)}")
    return resp.json()

def find_category_id(site: WordPressSite, name: str) -> Optional[int]:
    resp = request_with_retry(
        "GET", _endpoint(site, "/categories"),
        headers=_auth_header(site),
        params={"search": name, "_fields": "id,name"},
    )
    if resp.status_code != 200:
        raise RuntimeError(f"Category lookup failed: {_error_message(resp)}")
    matches = resp.json()
    if not matches:
        return None
    for cat in matches:
        if str(cat.get("name", "")).strip().lower() == name.strip().lower():
            return int(cat["id"])
    return int(matches[0]["id"])

def check_connection(site: WordPressSite) -> Dict[str, Any]:
    resp = request_with_retry("GET", _endpoint(site, "/users/me"), headers=_auth_header(site))
    if resp.status_code != 200:
        return {"ok": False, "status": resp.status_code, "error": _error_message(resp)}
    data = resp.json()
    return {"ok": True, "status": resp.status_code, "user": data.get("name") or data.get("slug")}

def _image_bytes(image_url: str) -> bytes:
    if image_url.startswith("data:"):
        header, _, payload = image_url.partition(",")
        if ";base64" not in header:
            raise ValueError("only base64 data URLs are supported")
        return base64.b64decode(payload)
    with httpx.Client(timeout=60, follow_redirects=True) as c:
        r = c.get(image_url)
        r.raise_for_status()
        return r.content

def upload_featured_image(site: WordPressSite, image_url: str, title: str) -> Optional[int]:
    """Upload to the media library; None if anything goes wrong (never fatal)."""
    try:
        image = _image_bytes(image_url)
        headers = _auth_header(site)
        headers.update({
            "Content-Type": "image/png",
            "Content-Disposition": "attachment; filename=featured-image.png",
        })
        with httpx.Client(timeout=httpx.Timeout(settings.wordpress_timeout, connect=5)) as c:
            r = c.post(_endpoint(site, "/media"), headers=headers, content=image)
        if r.status_code not in (200, 201):
            logger.warning("[WordPress] media upload for %r failed: %s", title, _error_message(r))
            return None
        return r.json().get("id")
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("[WordPress] media upload for %r failed, continuing without it: %s", title, e)
        return None

def create_post(
    site: WordPressSite,
    title: str,
    content: str,
    category_id: int,
    featured_media_id: Optional[int] = None,
    excerpt: str = "",
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": title,
        "content": content,
        "status": "publish",
        "categories": [category_id],
    }
    if excerpt:
        payload["excerpt"] = excerpt
    if featured_media_id:
        payload["featured_media"] = featured_media_id
    # not retried: a POST that timed out may still have created the post
    with httpx.Client(timeout=httpx.Timeout(settings.wordpress_timeout, connect=5)) as c:
        r = c.post(_endpoint(site, "/posts"), headers=_auth_header(site), json=payload)
    if r.status_code not in (200, 201):
        raise PublishError(f"WordPress rejected the post: {_error_message(r)}", stage="publish")
    return r.json()


class WordPressTarget:
    """PublishingTarget backed by the WordPress REST API."""

    def __init__(self, default_category_id: Optional[int] = None):
        self.default_category_id = default_category_id or settings.default_category_id

    def resolve_category(self, site: WordPressSite, name: str) -> int:
        if not name:
            return self.default_category_id
        try:
            found = find_category_id(site, name)
        except Exception as e:
            logger.warning("[WordPress] category lookup for %r failed, using default: %s", name, e)
            return self.default_category_id
        return found if found is not None else self.default_category_id

    def publish(
        self,
        site: WordPressSite,
        title: str,
        content: str,
        category_id: int,
        image_url: Optional[str],
        excerpt: str = "",
    ) -> PublishResult:
        media_id = upload_featured_image(site, image_url, title) if image_url else None
        try:
            post = create_post(site, title, content, category_id, featured_media_id=media_id, excerpt=excerpt)
        except httpx.HTTPError as e:
            raise PublishError(f"WordPress request failed: {e}", stage="publish") from e
        if "id" not in post:
            raise PublishError("WordPress response has no post id", stage="publish")
        return PublishResult(external_id=str(post["id"]), link=post.get("link"))
