"""Interfaces the automation core depends on.

The concrete implementations live next to this module (WordPress REST,
Hugging Face inference); tests substitute fakes with the same methods.
"""
from typing import List, Optional, Protocol

from autopublish.db.models import WordPressSite
from autopublish.services.schemas import ArticleBody, ArticleIdea, ContentProfile, PublishResult


class ContentAnalyzer(Protocol):
    def analyze(self, site: WordPressSite) -> ContentProfile: ...


class ContentGenerator(Protocol):
    def ideas(self, profile: ContentProfile, count: int) -> List[ArticleIdea]: ...

    def article(self, idea: ArticleIdea, profile: ContentProfile) -> ArticleBody: ...


class ImageGenerator(Protocol):
    def generate(self, subject: str) -> str: ...


class PublishingTarget(Protocol):
    def resolve_category(self, site: WordPressSite, name: str) -> int: ...

    def publish(
        self,
        site: WordPressSite,
        title: str,
        content: str,
        category_id: int,
        image_url: Optional[str],
        excerpt: str = "",
    ) -> PublishResult: ...
