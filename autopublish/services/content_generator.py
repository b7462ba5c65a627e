import json
from textwrap import dedent
from typing import List, Optional

from autopublish.config import settings
from autopublish.errors import GenerationError
from autopublish.services.hf_client import HFClient
from autopublish.services.schemas import (
    ArticleBody, ArticleIdea, ContentProfile, IdeaList, decode_payload,
)

IDEA_SHAPE = {
    "articles": [{
        "title": "Compelling article title",
        "prompt": "Detailed brief for writing the full article",
        "category": "one of the available categories",
        "tags": ["relevant", "tags"],
        "content_type": "how-to/listicle/guide/opinion/news/tutorial",
        "estimated_length": 900,
    }]
}

ARTICLE_SHAPE = {
    "title": "Final article title",
    "content": "Complete article in HTML with headings and paragraphs",
    "excerpt": "Two or three sentence summary",
}

def build_ideas_prompt(profile: ContentProfile, count: int) -> str:
    style = profile.writing_style
    return dedent(f'''
    Instruction: Suggest {count} new article ideas that fit this blog.
    Blog niche: {profile.niche}
    Main topics: {", ".join(profile.topics)}
    Writing style: {style.tone}, {style.complexity} level, about {style.average_length} words
    Content types: {", ".join(profile.content_types)}
    Available categories: {", ".join(profile.categories)}
    Answer with a single JSON object shaped like:
    {json.dumps(IDEA_SHAPE)}
    Output:
    ''').strip()

def build_article_prompt(idea: ArticleIdea, profile: ContentProfile) -> str:
    style = profile.writing_style
    return dedent(f'''
    Instruction: Write a complete {idea.content_type} article for a {profile.niche} blog.
    Title: {idea.title}
    Target length: {idea.estimated_length} words
    Tone: {style.tone}. Complexity: {style.complexity}.
    Brief: {idea.prompt}
    Write the body as HTML suitable for WordPress.
    Answer with a single JSON object shaped like:
    {json.dumps(ARTICLE_SHAPE)}
    Output:
    ''').strip()

class HFContentGenerator:
    """ContentGenerator on the Hugging Face inference API."""

    def __init__(self, hf: Optional[HFClient] = None, model: Optional[str] = None):
        self._hf = hf
        self.model = model or settings.generator_model

    @property
    def hf(self) -> HFClient:
        if self._hf is None:
            self._hf = HFClient()
        return self._hf

    def _complete(self, prompt: str, max_new_tokens: int, stage: str) -> str:
        try:
            return self.hf.text_generation(
                self.model, prompt,
                params={"max_new_tokens": max_new_tokens, "temperature": 0.7, "top_p": 0.95, "return_full_text": False},
            )
        except RuntimeError as e:
            raise GenerationError(f"Generation model call failed: {e}", stage=stage) from e

    def ideas(self, profile: ContentProfile, count: int) -> List[ArticleIdea]:
        raw = self._complete(build_ideas_prompt(profile, count), 600, "ideas")
        ideas = decode_payload(raw, IdeaList, GenerationError, stage="ideas").articles
        if not ideas:
            raise GenerationError("model returned no article ideas", stage="ideas")
        return ideas[:count]

    def article(self, idea: ArticleIdea, profile: ContentProfile) -> ArticleBody:
        # roughly 1.5 tokens per word plus HTML markup
        budget = min(4000, max(800, idea.estimated_length * 2))
        raw = self._complete(build_article_prompt(idea, profile), budget, "article")
        return decode_payload(raw, ArticleBody, GenerationError, stage="article")
