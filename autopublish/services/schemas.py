"""Typed payloads exchanged with the text-generation model.

Model output is decoded strictly: every field is required, so a partial or
malformed answer becomes an error instead of silently empty values.
"""
import json
import re
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autopublish.errors import PipelineError

_FENCED = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE = re.compile(r"\{.*\}", re.DOTALL)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class WritingStyle(_Strict):
    tone: str = Field(min_length=1)
    complexity: str = Field(min_length=1)
    average_length: int = Field(gt=0)


class ContentProfile(_Strict):
    niche: str = Field(min_length=1)
    topics: List[str] = Field(min_length=1)
    categories: List[str]
    tags: List[str]
    writing_style: WritingStyle
    content_types: List[str]


class ArticleIdea(_Strict):
    title: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    category: str = Field(min_length=1)
    tags: List[str]
    content_type: str = Field(min_length=1)
    estimated_length: int = Field(gt=0)


class IdeaList(_Strict):
    articles: List[ArticleIdea]


class ArticleBody(_Strict):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    excerpt: str = Field(min_length=1)


class PublishResult(_Strict):
    external_id: str
    link: Optional[str] = None


M = TypeVar("M", bound=BaseModel)


def extract_json(text: str) -> Optional[str]:
    """Pull the JSON object out of a model reply (fenced block first, then bare)."""
    if not text:
        return None
    m = _FENCED.search(text) or _BARE.search(text)
    return m.group(1) if m and m.re is _FENCED else (m.group(0) if m else None)


def decode_payload(text: str, model: Type[M], error_cls: Type[PipelineError], **context) -> M:
    raw = extract_json(text)
    if raw is None:
        raise error_cls(f"no JSON object in model output for {model.__name__}", **context)
    try:
        return model.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        raise error_cls(f"model output is not valid JSON: {e.msg}", **context) from e
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise error_cls(f"model output does not match {model.__name__} (bad fields: {fields})", **context) from e
