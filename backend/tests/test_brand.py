"""
Tests for website_crawler.py and brand_profile.py.

The crawler runs against an httpx.MockTransport site; the profile step uses
a fake LLM returning JSON.
"""
import json
import uuid

import httpx
import pytest

from app.models.brand import BrandContextCache, BrandProfile
from app.models.source_document import SourceDocument
from app.services.brand_profile import generate_brand_profile, update_logo_settings, upsert_manual_fields
from app.services.website_crawler import (
    classify_path,
    crawl_website,
    html_to_text,
    linkedin_confidence,
    normalize_url,
)

from tests.fixtures.spaces_fixtures import FakeLLM

HOME = """<html><head><title>Acme Consulting | Home</title>
<style>.x{color:red}</style><script>var a = 1;</script></head>
<body><h1>We help teams ship</h1>
<a href="/about">About</a> <a href="/blog/launch">Launch</a>
<a href="/logo.png">Logo</a> <a href="/#top">Top</a>
<a href="https://elsewhere.test/page">Out</a>
<a href="https://www.linkedin.com/company/acmeconsulting">LinkedIn</a>
</body></html>"""

PAGES = {
    "/": HOME,
    "/about": "<html><head><title>About - Acme</title></head><body>Founded in Perth.</body></html>",
    "/blog/launch": "<html><head><title>Launch</title></head><body>We launched.</body></html>",
}


def _site():
    def handler(request):
        body = PAGES.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, text=body, headers={"content-type": "text/html"})

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestCrawlerHelpers:

    def test_normalize_url(self):
        assert normalize_url(" acme.test/ ") == "https://acme.test"
        assert normalize_url("http://acme.test") == "http://acme.test"
        with pytest.raises(ValueError):
            normalize_url("  ")

    def test_html_to_text_drops_scripts_and_styles(self):
        text = html_to_text(HOME)
        assert "var a" not in text
        assert "color:red" not in text
        assert "We help teams ship" in text

    @pytest.mark.parametrize(
        "path, expected",
        [("/work/big-win", "case-study"), ("/case-studies", "case-study"), ("/blog/x", "blog"),
         ("/services/cloud", "service"), ("/team", "page")],
    )
    def test_classify_path(self, path, expected):
        assert classify_path(path) == expected

    def test_linkedin_confidence(self):
        assert linkedin_confidence("Acme Consulting", "https://linkedin.com/company/acmeconsulting") == "high"
        assert linkedin_confidence("Acme", "https://linkedin.com/company/other") == "medium"
        assert linkedin_confidence("Acme", None) is None


class TestCrawlWebsite:

    def test_discovers_pages_and_replaces_old_documents(self, db):
        space_id = uuid.uuid4()
        db.add(SourceDocument(space_id=space_id, source_type="website", url="https://old.test", content="old"))
        db.commit()

        result = crawl_website(db, "acme.test", space_id, fetcher=_site())

        urls = sorted(p["url"] for p in result.pages_found)
        assert urls == ["https://acme.test/", "https://acme.test/about", "https://acme.test/blog/launch"]
        assert result.canonical_domain == "acme.test"
        assert result.detected_name == "Acme Consulting"
        assert result.linkedin_confidence == "high"

        docs = db.query(SourceDocument).filter(SourceDocument.space_id == space_id).all()
        assert len(docs) == 3
        assert not any(d.is_confirmed for d in docs)
        assert {d.meta["page_type"] for d in docs} == {"home", "about", "blog"}
        about = next(d for d in docs if d.url.endswith("/about"))
        assert about.title == "About"

        cache = db.query(BrandContextCache).filter(BrandContextCache.space_id == space_id).one()
        assert cache.setup_status == "website_pending"


class TestGenerateBrandProfile:

    def _docs(self, db, space_id):
        for path in ("/", "/about"):
            db.add(SourceDocument(space_id=space_id, source_type="website", url=f"https://acme.test{path}",
                                  title=path, content=f"Content for {path}", is_confirmed=False))
        db.commit()

    def test_requires_confirmed_documents(self, db):
        with pytest.raises(ValueError):
            generate_brand_profile(db, uuid.uuid4(), llm=FakeLLM(lambda kw: "{}"))

    def test_selected_pages_build_profile(self, db):
        space_id = uuid.uuid4()
        self._docs(db, space_id)
        generated = {
            "who_we_are": "A consultancy",
            "what_we_do": "Cloud delivery",
            "who_we_serve": "Government",
            "tone_notes": "Plain, warm",
            "themes": ["delivery"],
            "services": ["migration"],
        }
        llm = FakeLLM(lambda kw: json.dumps(generated))

        generate_brand_profile(db, space_id, selected_urls=["https://acme.test/about"], detected_name="Acme", llm=llm)

        profile = db.query(BrandProfile).filter(BrandProfile.space_id == space_id).one()
        assert profile.who_we_are == "A consultancy"
        assert profile.services == ["migration"]
        assert profile.is_system_generated is True
        prompt = llm.calls[0]["messages"][1]["content"]
        assert "Content for /about" in prompt
        assert "Content for /\n" not in prompt
        assert '"Acme"' in prompt
        assert llm.calls[0]["response_format"] == {"type": "json_object"}
        cache = db.query(BrandContextCache).filter(BrandContextCache.space_id == space_id).one()
        assert cache.setup_status == "profile_draft"

    def test_invalid_json_raises_runtime_error(self, db):
        space_id = uuid.uuid4()
        self._docs(db, space_id)
        with pytest.raises(RuntimeError):
            generate_brand_profile(db, space_id, selected_urls=["https://acme.test/"], llm=FakeLLM(lambda kw: "nope"))


class TestManualAndLogoSettings:

    def test_manual_fields_upserted(self, db):
        space_id = uuid.uuid4()
        upsert_manual_fields(db, space_id, {"who_we_are": "First"})
        rows = upsert_manual_fields(db, space_id, {"who_we_are": "Second", "tone": "Warm"})
        assert {r.field_name: r.field_value for r in rows} == {"who_we_are": "Second", "tone": "Warm"}

    def test_logo_settings_partial_update(self, db):
        space_id = uuid.uuid4()
        update_logo_settings(db, space_id, logo_url="https://cdn.test/a.png", logo_bottom_right_url="https://cdn.test/b.png")
        profile = update_logo_settings(db, space_id, logo_bottom_right_url="")
        assert profile.logo_url == "https://cdn.test/a.png"
        assert profile.logo_bottom_right_url is None
