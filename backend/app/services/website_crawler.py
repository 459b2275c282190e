from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from sqlalchemy.orm import Session

from ..models.brand import BrandContextCache
from ..models.source_document import SourceDocument

logger = logging.getLogger(__name__)

USER_AGENT = "SocialExpress/1.0 (Brand Discovery)"
MAX_PAGES = 30
MAX_LINKS_PER_PAGE = 20
MAX_CONTENT_CHARS = 5000

SEED_PAGES = [
    ("/", "home"),
    ("/about", "about"),
    ("/about-us", "about"),
    ("/services", "services"),
    ("/our-services", "services"),
    ("/what-we-do", "services"),
    ("/work", "work"),
    ("/case-studies", "work"),
    ("/portfolio", "work"),
    ("/contact", "contact"),
    ("/contact-us", "contact"),
]

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)
_OG_SITE_RE = re.compile(r'<meta[^>]*property="og:site_name"[^>]*content="([^"]+)"', re.I)
_LINKEDIN_RE = re.compile(r'href="(https?://(?:www\.)?linkedin\.com/company/[^"]+)"', re.I)
_HREF_RE = re.compile(r'href="([^"]+)"', re.I)
_ASSET_RE = re.compile(r"\.(pdf|jpg|png|gif|svg|css|js)$", re.I)
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.I)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_TITLE_SUFFIX_RE = re.compile(r"\s*[|–—-].*$")


@dataclass
class DiscoveryResult:
    session_id: str
    canonical_domain: str
    detected_name: Optional[str] = None
    detected_linkedin: Optional[str] = None
    linkedin_confidence: Optional[str] = None
    pages_found: List[Dict[str, Any]] = field(default_factory=list)


def normalize_url(url: str) -> str:
    normalized = (url or "").strip()
    if not normalized:
        raise ValueError("url is required")
    if not normalized.startswith("http"):
        normalized = "https://" + normalized
    return normalized.rstrip("/")


def html_to_text(html: str) -> str:
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()[:MAX_CONTENT_CHARS]


def classify_path(path: str) -> str:
    if "/work/" in path or "/case-stud" in path:
        return "case-study"
    if "/blog/" in path or "/post/" in path:
        return "blog"
    if "/service" in path:
        return "service"
    return "page"


def linkedin_confidence(name: Optional[str], linkedin_url: Optional[str]) -> Optional[str]:
    if not linkedin_url:
        return None
    name_slug = re.sub(r"[^a-z0-9]", "", (name or "").lower())
    if name_slug and name_slug in linkedin_url.lower():
        return "high"
    return "medium"


class _Crawl:
    def __init__(self, db: Session, space_id: uuid.UUID, origin: str, client: httpx.Client, session_id: str):
        self.db = db
        self.space_id = space_id
        self.origin = origin
        self.client = client
        self.session_id = session_id
        self.seen_paths: set[str] = set()
        self.discovered: List[str] = []
        self.pages: List[Dict[str, Any]] = []
        self.detected_name: Optional[str] = None
        self.detected_linkedin: Optional[str] = None

    def page(self, page_url: str, page_type: str) -> List[str]:
        links: List[str] = []
        try:
            response = self.client.get(page_url, headers={"User-Agent": USER_AGENT}, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.info("Could not fetch %s: %s", page_url, e, extra={"step": "crawl_page"})
            return links
        if response.status_code >= 400:
            return links

        html = response.text
        final_url = str(response.url)
        final_path = urlparse(final_url).path or "/"
        if final_path in self.seen_paths:
            return links
        self.seen_paths.add(final_path)

        title_match = _TITLE_RE.search(html)
        title = title_match.group(1).strip() if title_match else page_type

        if page_type == "home":
            if title_match:
                self.detected_name = re.split(r"[|–—-]", title_match.group(1))[0].strip()
            og = _OG_SITE_RE.search(html)
            if og:
                self.detected_name = og.group(1).strip()
            li = _LINKEDIN_RE.search(html)
            if li:
                self.detected_linkedin = li.group(1)

        for href in _HREF_RE.findall(html):
            if href.startswith("/") and "#" not in href and not _ASSET_RE.search(href):
                full = f"{self.origin}{href}"
                if href not in self.seen_paths and full not in self.discovered and full not in links:
                    links.append(full)

        clean_title = _TITLE_SUFFIX_RE.sub("", title)
        self.db.add(
            SourceDocument(
                space_id=self.space_id,
                source_type="website",
                url=final_url,
                title=clean_title,
                content=html_to_text(html),
                meta={"page_type": page_type, "discovered_at": datetime.utcnow().isoformat() + "Z"},
                is_confirmed=False,
                discovery_session_id=self.session_id,
            )
        )
        self.pages.append({"url": final_url, "title": clean_title, "type": page_type, "selected": True})
        return links


def crawl_website(
    db: Session,
    url: str,
    space_id: str | uuid.UUID,
    fetcher: Optional[httpx.Client] = None,
) -> DiscoveryResult:
    """
    Discover brand pages on a website and store them as unconfirmed documents.

    Previous website documents for the space are replaced. Seed paths are
    tried first, then same-origin links found on them, up to MAX_PAGES pages.
    """
    normalized = normalize_url(url)
    parsed = urlparse(normalized)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    canonical_domain = re.sub(r"^www\.", "", parsed.hostname or "")
    space_uuid = uuid.UUID(str(space_id))
    session_id = str(uuid.uuid4())

    db.query(SourceDocument).filter(
        SourceDocument.space_id == space_uuid,
        SourceDocument.source_type == "website",
    ).delete(synchronize_session=False)

    client = fetcher or httpx.Client(timeout=15)
    crawl = _Crawl(db, space_uuid, origin, client, session_id)
    try:
        for path, page_type in SEED_PAGES:
            if len(crawl.pages) >= MAX_PAGES:
                break
            links = crawl.page(f"{origin}{path}", page_type)
            crawl.discovered.extend(links[:MAX_LINKS_PER_PAGE])

        for link in crawl.discovered:
            if len(crawl.pages) >= MAX_PAGES:
                break
            path = urlparse(link).path
            if path in crawl.seen_paths:
                continue
            crawl.page(link, classify_path(path))
    finally:
        if fetcher is None:
            client.close()

    confidence = linkedin_confidence(crawl.detected_name, crawl.detected_linkedin)

    cache = db.query(BrandContextCache).filter(BrandContextCache.space_id == space_uuid).first()
    if not cache:
        cache = BrandContextCache(space_id=space_uuid)
        db.add(cache)
    cache.setup_status = "website_pending"
    cache.detected_name = crawl.detected_name
    cache.detected_linkedin = crawl.detected_linkedin
    cache.linkedin_confidence = confidence
    cache.compiled_from = {
        "discovery_session_id": session_id,
        "discovered_at": datetime.utcnow().isoformat() + "Z",
    }
    db.commit()

    logger.info(
        "Website crawl found %s pages", len(crawl.pages),
        extra={"space_id": str(space_uuid), "step": "crawl_website"},
    )
    return DiscoveryResult(
        session_id=session_id,
        canonical_domain=canonical_domain,
        detected_name=crawl.detected_name,
        detected_linkedin=crawl.detected_linkedin,
        linkedin_confidence=confidence,
        pages_found=crawl.pages,
    )
