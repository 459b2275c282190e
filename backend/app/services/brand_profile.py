from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.brand import BrandContextCache, BrandManualField, BrandProfile
from ..models.source_document import SourceDocument
from .llm import chat_completion

logger = logging.getLogger(__name__)

MAX_PROFILE_DOC_CHARS = 2000

PROFILE_SYSTEM_PROMPT = """You are a brand strategist analysing website content to create a brand profile.
Your output should be concise and actionable. Focus on what's explicitly stated or strongly implied.
Do NOT make assumptions or add information not present in the content.
If information for a section is not available, say "Not specified in content.\""""

PROFILE_SHAPE = """{
  "who_we_are": "A 2-3 sentence description of the company identity and mission",
  "what_we_do": "A concise list of main services or products offered",
  "who_we_serve": "Target audience or ideal customers based on the content",
  "tone_notes": "2-3 adjectives describing the brand's communication style",
  "themes": ["theme1", "theme2", "theme3"],
  "services": ["service1", "service2", "service3"]
}"""


def _confirm_selected(db: Session, space_id: uuid.UUID, selected_urls: List[str]) -> None:
    db.query(SourceDocument).filter(
        SourceDocument.space_id == space_id,
        SourceDocument.source_type == "website",
    ).update({SourceDocument.is_confirmed: False}, synchronize_session=False)

    db.query(SourceDocument).filter(
        SourceDocument.space_id == space_id,
        SourceDocument.url.in_(selected_urls),
    ).update({SourceDocument.is_confirmed: True}, synchronize_session=False)


def _get_or_create_cache(db: Session, space_id: uuid.UUID) -> BrandContextCache:
    cache = db.query(BrandContextCache).filter(BrandContextCache.space_id == space_id).first()
    if not cache:
        cache = BrandContextCache(space_id=space_id)
        db.add(cache)
    return cache


def generate_brand_profile(
    db: Session,
    space_id: str | uuid.UUID,
    selected_urls: Optional[List[str]] = None,
    detected_name: Optional[str] = None,
    llm: Any = None,
) -> Dict[str, Any]:
    """
    Build a brand profile from the confirmed website documents.

    When `selected_urls` is given, confirmation is reset to exactly those
    pages first. Raises ValueError if no confirmed document remains.
    """
    space_uuid = uuid.UUID(str(space_id))

    if selected_urls:
        _confirm_selected(db, space_uuid, selected_urls)
        if detected_name:
            _get_or_create_cache(db, space_uuid).detected_name = detected_name
        db.flush()

    docs = (
        db.query(SourceDocument)
        .filter(
            SourceDocument.space_id == space_uuid,
            SourceDocument.is_confirmed.is_(True),
            SourceDocument.source_type == "website",
        )
        .order_by(SourceDocument.created_at.asc())
        .all()
    )
    if not docs:
        raise ValueError("No confirmed source documents found")

    page_contents = "\n\n".join(
        f"### {d.title or 'Page'}\n{(d.content or '')[:MAX_PROFILE_DOC_CHARS]}" for d in docs
    )
    cache = db.query(BrandContextCache).filter(BrandContextCache.space_id == space_uuid).first()
    business_name = (cache.detected_name if cache else None) or detected_name or "this business"

    user_prompt = (
        f'Analyse the following website content for "{business_name}" and extract a brand profile.\n\n'
        f"WEBSITE CONTENT:\n{page_contents}\n\n---\n\n"
        f"Generate a JSON response with exactly this structure:\n{PROFILE_SHAPE}\n\n"
        "Only include information that can be grounded in the content. Keep each section brief."
    )
    completion = chat_completion(
        [
            {"role": "system", "content": PROFILE_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ],
        max_tokens=800,
        temperature=0.3,
        client=llm,
        json_mode=True,
    )
    try:
        generated = json.loads(completion.text)
    except json.JSONDecodeError as e:
        raise RuntimeError("Invalid response format from AI") from e

    profile = db.query(BrandProfile).filter(BrandProfile.space_id == space_uuid).first()
    if not profile:
        profile = BrandProfile(space_id=space_uuid)
        db.add(profile)
    profile.who_we_are = generated.get("who_we_are") or None
    profile.what_we_do = generated.get("what_we_do") or None
    profile.who_we_serve = generated.get("who_we_serve") or None
    profile.tone_notes = generated.get("tone_notes") or None
    profile.themes = generated["themes"] if isinstance(generated.get("themes"), list) else []
    profile.services = generated["services"] if isinstance(generated.get("services"), list) else []
    profile.is_system_generated = True
    profile.last_generated_at = datetime.utcnow()

    _get_or_create_cache(db, space_uuid).setup_status = "profile_draft"
    db.commit()

    logger.info(
        "Brand profile generated from %s documents", len(docs),
        extra={"space_id": str(space_uuid), "step": "brand_profile"},
    )
    return generated


def upsert_manual_fields(db: Session, space_id: str | uuid.UUID, fields: Dict[str, Optional[str]]) -> List[BrandManualField]:
    space_uuid = uuid.UUID(str(space_id))
    existing = {
        f.field_name: f
        for f in db.query(BrandManualField).filter(BrandManualField.space_id == space_uuid).all()
    }
    for name, value in fields.items():
        row = existing.get(name)
        if row is None:
            row = BrandManualField(space_id=space_uuid, field_name=name)
            db.add(row)
            existing[name] = row
        row.field_value = value
    db.commit()
    return list(existing.values())


def update_logo_settings(
    db: Session,
    space_id: str | uuid.UUID,
    logo_url: Optional[str] = None,
    logo_top_left_url: Optional[str] = None,
    logo_bottom_right_url: Optional[str] = None,
) -> BrandProfile:
    space_uuid = uuid.UUID(str(space_id))
    profile = db.query(BrandProfile).filter(BrandProfile.space_id == space_uuid).first()
    if not profile:
        profile = BrandProfile(space_id=space_uuid)
        db.add(profile)
    if logo_url is not None:
        profile.logo_url = logo_url or None
    if logo_top_left_url is not None:
        profile.logo_top_left_url = logo_top_left_url or None
    if logo_bottom_right_url is not None:
        profile.logo_bottom_right_url = logo_bottom_right_url or None
    db.commit()
    return profile
