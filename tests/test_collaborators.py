import base64
import json
from unittest.mock import MagicMock

import httpx
import pytest

from autopublish.errors import AnalysisError, GenerationError, ImageError, PublishError
from autopublish.services import wordpress_api
from autopublish.services.content_analyzer import HFContentAnalyzer, average_word_count, strip_html
from autopublish.services.content_generator import HFContentGenerator
from autopublish.services.image_generator import HFImageGenerator
from autopublish.services.schemas import ArticleBody, ContentProfile, decode_payload, extract_json
from autopublish.services.wordpress_api import WordPressTarget

from conftest import PROFILE

IDEAS_REPLY = """Sure! Here are the ideas:
```json
{"articles": [{"title": "Composting 101", "prompt": "Explain composting", "category": "Soil",
  "tags": ["compost"], "content_type": "guide", "estimated_length": 1200}]}
```"""


def fake_hf(reply=None, error=None):
    hf = MagicMock()
    if error:
        hf.text_generation.side_effect = error
        hf.text_to_image.side_effect = error
    else:
        hf.text_generation.return_value = reply
        hf.text_to_image.return_value = b"\x89PNG fake"
    return hf


# ---------------------------------------------------------------------------
# Strict decoding
# ---------------------------------------------------------------------------

def test_extract_json_prefers_fenced_block():
    assert json.loads(extract_json(IDEAS_REPLY))["articles"][0]["title"] == "Composting 101"
    assert extract_json('noise {"a": 1} trailing') == '{"a": 1}'
    assert extract_json("no json here") is None


def test_decode_rejects_missing_fields():
    with pytest.raises(GenerationError) as exc:
        decode_payload('{"title": "x", "content": "y"}', ArticleBody, GenerationError, stage="article")
    assert "excerpt" in str(exc.value)
    assert exc.value.stage == "article"


def test_decode_rejects_broken_json():
    with pytest.raises(GenerationError):
        decode_payload('{"title": "x",', ArticleBody, GenerationError)


# ---------------------------------------------------------------------------
# Generator / analyzer / images
# ---------------------------------------------------------------------------

def test_generator_ideas():
    gen = HFContentGenerator(hf=fake_hf(IDEAS_REPLY), model="m")
    ideas = gen.ideas(ContentProfile.model_validate(PROFILE), 1)
    assert [i.title for i in ideas] == ["Composting 101"]
    prompt = gen.hf.text_generation.call_args.args[1]
    assert "home gardening" in prompt


def test_generator_model_failure_is_generation_error():
    gen = HFContentGenerator(hf=fake_hf(error=RuntimeError("HuggingFace API error 503")), model="m")
    with pytest.raises(GenerationError) as exc:
        gen.ideas(ContentProfile.model_validate(PROFILE), 1)
    assert exc.value.stage == "ideas"


def test_generator_empty_idea_list_is_error():
    gen = HFContentGenerator(hf=fake_hf('{"articles": []}'), model="m")
    with pytest.raises(GenerationError):
        gen.ideas(ContentProfile.model_validate(PROFILE), 1)


def test_generator_article():
    gen = HFContentGenerator(hf=fake_hf('{"title": "T", "content": "<p>x</p>", "excerpt": "E"}'), model="m")
    idea = HFContentGenerator(hf=fake_hf(IDEAS_REPLY), model="m").ideas(ContentProfile.model_validate(PROFILE), 1)[0]
    body = gen.article(idea, ContentProfile.model_validate(PROFILE))
    assert body.content == "<p>x</p>"


def test_analyzer_builds_profile(monkeypatch, site):
    posts = [{"title": {"rendered": "Tomato tips"}, "excerpt": {"rendered": "<p>Grow &amp; eat</p>"},
              "content": {"rendered": "<p>one two three four</p>"}}]
    monkeypatch.setattr(wordpress_api, "list_recent_posts", lambda s, limit: posts)
    monkeypatch.setattr(wordpress_api, "list_categories", lambda s: [{"id": 3, "name": "Vegetables"}])
    hf = fake_hf("```json\n" + json.dumps(PROFILE) + "\n```")

    profile = HFContentAnalyzer(hf=hf, model="m", post_limit=10).analyze(site)

    assert profile.niche == "home gardening"
    assert "Grow & eat" in hf.text_generation.call_args.args[1]


def test_analyzer_fetch_failure(monkeypatch, site):
    def boom(s, limit):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(wordpress_api, "list_recent_posts", boom)
    with pytest.raises(AnalysisError) as exc:
        HFContentAnalyzer(hf=fake_hf("{}"), model="m", post_limit=10).analyze(site)
    assert exc.value.stage == "fetch"


def test_analyzer_rejects_partial_profile(monkeypatch, site):
    monkeypatch.setattr(wordpress_api, "list_recent_posts", lambda s, limit: [{"title": "t"}])
    monkeypatch.setattr(wordpress_api, "list_categories", lambda s: [])
    with pytest.raises(AnalysisError) as exc:
        HFContentAnalyzer(hf=fake_hf('{"niche": "x"}'), model="m", post_limit=10).analyze(site)
    assert exc.value.stage == "decode"


def test_html_helpers():
    assert strip_html("<p>a&nbsp;<b>b</b></p>") == "a b"
    assert average_word_count([{"content": {"rendered": "a b"}}, {"content": {"rendered": "a b c d"}}]) == 3
    assert average_word_count([]) == 0


def test_image_generator_returns_data_url():
    url = HFImageGenerator(hf=fake_hf(), model="m").generate("Tomatoes")
    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == b"\x89PNG fake"


def test_image_generator_failure():
    with pytest.raises(ImageError):
        HFImageGenerator(hf=fake_hf(error=RuntimeError("quota")), model="m").generate("x")


# ---------------------------------------------------------------------------
# WordPress target
# ---------------------------------------------------------------------------

def test_auth_header_uses_decrypted_password(site):
    header = wordpress_api._auth_header(site)["Authorization"]
    assert base64.b64decode(header.split()[1]).decode() == "editor:app pass word"


def test_category_falls_back_to_default(monkeypatch, site):
    def boom(s, name):
        raise RuntimeError("Category lookup failed: HTTP 500")

    monkeypatch.setattr(wordpress_api, "find_category_id", boom)
    assert WordPressTarget(default_category_id=1).resolve_category(site, "Vegetables") == 1

    monkeypatch.setattr(wordpress_api, "find_category_id", lambda s, name: None)
    assert WordPressTarget(default_category_id=1).resolve_category(site, "Unknown") == 1

    monkeypatch.setattr(wordpress_api, "find_category_id", lambda s, name: 12)
    assert WordPressTarget(default_category_id=1).resolve_category(site, "Vegetables") == 12


def test_find_category_prefers_exact_name(monkeypatch, site):
    resp = httpx.Response(200, json=[{"id": 4, "name": "Vegetables & Herbs"}, {"id": 9, "name": "vegetables"}])
    monkeypatch.setattr(wordpress_api, "request_with_retry", lambda *a, **kw: resp)
    assert wordpress_api.find_category_id(site, "Vegetables") == 9


def test_publish_uploads_image_and_creates_post(monkeypatch, site):
    calls = {}

    def fake_upload(s, image_url, title):
        calls["image"] = image_url
        return 55

    def fake_create(s, title, content, category_id, featured_media_id=None, excerpt=""):
        calls["post"] = (title, category_id, featured_media_id, excerpt)
        return {"id": 321, "link": "https://blog.example.com/composting-101/"}

    monkeypatch.setattr(wordpress_api, "upload_featured_image", fake_upload)
    monkeypatch.setattr(wordpress_api, "create_post", fake_create)

    result = WordPressTarget(1).publish(site, "Composting 101", "<p>x</p>", 3, "data:image/png;base64,AAAA", excerpt="E")

    assert result.external_id == "321"
    assert result.link.endswith("/composting-101/")
    assert calls["post"] == ("Composting 101", 3, 55, "E")


def test_publish_network_error_is_publish_error(monkeypatch, site):
    def boom(*a, **kw):
        raise httpx.ReadTimeout("timed out")

    monkeypatch.setattr(wordpress_api, "create_post", boom)
    with pytest.raises(PublishError):
        WordPressTarget(1).publish(site, "T", "C", 1, None)


def test_rejected_post_is_publish_error(monkeypatch, site):
    class FakeClient:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def post(self, url, headers=None, json=None):
            return httpx.Response(401, json={"code": "rest_cannot_create", "message": "Sorry, you are not allowed"})

    monkeypatch.setattr(wordpress_api.httpx, "Client", FakeClient)
    with pytest.raises(PublishError) as exc:
        wordpress_api.create_post(site, "T", "C", 1)
    assert "rest_cannot_create" in str(exc.value)


def test_image_bytes_from_data_url():
    assert wordpress_api._image_bytes("data:image/png;base64," + base64.b64encode(b"png").decode()) == b"png"
