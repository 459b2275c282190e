from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.brand import BrandProfile
from ..models.campaign import Campaign
from .llm import chat_completion

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


def parse_ideas(content: str) -> List[str]:
    """
    Parse the model's idea list. Expects a JSON array of strings; falls back
    to one idea per line (lines of more than 10 characters) when it isn't one.
    """
    cleaned = _CODE_FENCE.sub("", content or "").strip()
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, list):
            return [str(i).strip() for i in parsed if str(i).strip()]
    except json.JSONDecodeError:
        logger.warning("Idea list was not valid JSON, falling back to lines")
    return [line.strip() for line in (content or "").split("\n") if len(line.strip()) > 10]


def _brand_context(profile: Optional[BrandProfile]) -> str:
    if not profile:
        return ""
    lines = []
    if profile.detected_name:
        lines.append(f"Brand: {profile.detected_name}")
    if profile.taglines:
        lines.append(f"Taglines: {', '.join(profile.taglines)}")
    if profile.services:
        lines.append(f"Services: {', '.join(profile.services)}")
    if profile.key_messaging:
        lines.append(f"Key Messaging: {profile.key_messaging}")
    if profile.target_audience:
        lines.append(f"Target Audience: {profile.target_audience}")
    if profile.tone_of_voice:
        lines.append(f"Tone: {profile.tone_of_voice}")
    return "\n".join(lines)


def build_ideas_prompt(count: int, gen: Dict[str, Any], brand_context: str) -> str:
    parts = [
        f"You are a LinkedIn content strategist. Generate exactly {count} unique post topic ideas.",
        "Each idea should be:\n"
        "- A compelling one-liner that could become a full LinkedIn post\n"
        "- Focused on thought leadership, insights, or valuable perspectives\n"
        "- Varied in angle (mix of trends, lessons learned, advice, opinions, case observations)\n"
        "- NOT generic marketing speak",
    ]
    if brand_context:
        parts.append(f"BRAND CONTEXT:\n{brand_context}")
    if gen.get("tone_modifiers"):
        parts.append(f"TONE: {gen['tone_modifiers']}")
    if gen.get("audience_notes"):
        parts.append(f"TARGET AUDIENCE: {gen['audience_notes']}")
    if gen.get("example_post"):
        parts.append(f"EXAMPLE POST STYLE (match this voice):\n{gen['example_post']}")

    inspiration = [t.strip() for t in str(gen.get("target_topics") or "").split("\n") if t.strip()]
    if inspiration:
        inspired = min(math.ceil(len(inspiration) * 1.5), math.floor(count * 0.6))
        parts.append(
            "INSPIRATION TOPICS (use some of these as jumping-off points, but DON'T make all "
            "posts about them - create variety):\n"
            + "\n".join(f"- {t}" for t in inspiration)
            + f"\nCreate roughly {inspired} ideas inspired by these topics, and the rest on "
            "related but different themes."
        )

    parts.append(
        "Return ONLY a JSON array of strings, each being a topic idea. Example format:\n"
        '["Topic idea 1", "Topic idea 2", "Topic idea 3"]\n'
        "Do not include numbering, bullets, or any other formatting. Just the JSON array."
    )
    return "\n\n".join(parts)


def generate_campaign_ideas(
    db: Session,
    campaign_id: str | UUID,
    count: Optional[int] = None,
    llm: Any = None,
) -> List[str]:
    campaign = db.query(Campaign).filter(Campaign.id == UUID(str(campaign_id))).first()
    if not campaign:
        raise LookupError(f"Campaign {campaign_id} not found")

    target = int(count or campaign.target_count or 10)
    gen = dict(campaign.generation_settings or {})
    profile = db.query(BrandProfile).filter(BrandProfile.space_id == campaign.space_id).first()

    completion = chat_completion(
        [
            {"role": "system", "content": build_ideas_prompt(target, gen, _brand_context(profile))},
            {"role": "user", "content": f"Generate {target} LinkedIn post topic ideas."},
        ],
        max_tokens=2000,
        temperature=0.9,
        client=llm,
    )
    ideas = parse_ideas(completion.text or "[]")

    gen["generated_ideas"] = ideas
    # Reassign so the JSON column is marked dirty
    campaign.generation_settings = gen
    db.commit()

    logger.info(
        "Generated %s campaign ideas", len(ideas),
        extra={"space_id": str(campaign.space_id), "campaign_id": str(campaign.id), "step": "ideas"},
    )
    return ideas
