import html
import json
import logging
import re
from textwrap import dedent
from typing import Any, Dict, List, Optional

from autopublish.config import settings
from autopublish.db.models import WordPressSite
from autopublish.errors import AnalysisError
from autopublish.services import wordpress_api
from autopublish.services.hf_client import HFClient
from autopublish.services.schemas import ContentProfile, decode_payload

logger = logging.getLogger(__name__)

_TAGS = re.compile(r"<[^>]+>")

PROFILE_SHAPE = {
    "niche": "short niche label",
    "topics": ["main", "topics"],
    "categories": ["category names actually used"],
    "tags": ["recurring", "tags"],
    "writing_style": {"tone": "e.g. friendly", "complexity": "beginner/intermediate/expert", "average_length": 900},
    "content_types": ["how-to", "listicle"],
}

def strip_html(text: str) -> str:
    return " ".join(html.unescape(_TAGS.sub(" ", text or "")).split())

def _rendered(post: Dict[str, Any], key: str) -> str:
    value = post.get(key) or {}
    return strip_html(value.get("rendered", "") if isinstance(value, dict) else str(value))

def average_word_count(posts: List[Dict[str, Any]]) -> int:
    if not posts:
        return 0
    total = sum(len(_rendered(p, "content").split()) for p in posts)
    return round(total / len(posts))

def build_prompt(posts: List[Dict[str, Any]], categories: List[str]) -> str:
    samples = "\n".join(
        f"- {_rendered(p, 'title')}: {_rendered(p, 'excerpt')[:280]}" for p in posts[:20]
    )
    return dedent(f'''
    Instruction: You analyse blogs. Read the recent posts below and describe the blog.
    Answer with a single JSON object with exactly these keys:
    {json.dumps(PROFILE_SHAPE)}
    Average post length is about {average_word_count(posts)} words.
    Existing categories: {", ".join(categories) or "none"}
    Recent posts:
    {samples}
    Output:
    ''').strip()

class HFContentAnalyzer:
    """ContentAnalyzer: recent WordPress posts -> model -> ContentProfile."""

    def __init__(self, hf: Optional[HFClient] = None, model: Optional[str] = None, post_limit: Optional[int] = None):
        self._hf = hf
        self.model = model or settings.analyzer_model
        self.post_limit = post_limit or settings.analysis_post_limit

    @property
    def hf(self) -> HFClient:
        if self._hf is None:
            self._hf = HFClient()
        return self._hf

    def analyze(self, site: WordPressSite) -> ContentProfile:
        try:
            posts = wordpress_api.list_recent_posts(site, self.post_limit)
            categories = [c.get("name", "") for c in wordpress_api.list_categories(site)]
        except Exception as e:
            raise AnalysisError(f"Cannot read posts from {site.url}: {e}", stage="fetch") from e
        if not posts:
            raise AnalysisError(f"{site.url} has no published posts to analyze", stage="fetch")

        prompt = build_prompt(posts, [c for c in categories if c])
        try:
            raw = self.hf.text_generation(
                self.model, prompt,
                params={"max_new_tokens": 700, "temperature": 0.3, "return_full_text": False},
            )
        except RuntimeError as e:
            raise AnalysisError(f"Analysis model call failed: {e}", stage="model") from e

        profile = decode_payload(raw, ContentProfile, AnalysisError, stage="decode")
        logger.info("[analyzer] %s -> niche=%r topics=%s", site.url, profile.niche, ", ".join(profile.topics))
        return profile
