from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import SessionLocal
from ..models.brand import BrandManualField
from ..models.campaign import Campaign, CampaignStatus
from ..models.post import ImageStatus, OverlayStatus, Post, PostStatus
from ..models.prompt_template import PromptTemplate
from ..models.source_document import PLACEHOLDER_CONTENT, SourceDocument
from .llm import chat_completion

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TEMPLATE = """Write a professional LinkedIn post about {topic}.
The post should be engaging and provide value to the reader.
Use the brand context provided to ensure consistency.
Keep it concise (100-200 words) and include a clear call to action."""

FALLBACK_TOPICS = [
    "Industry trends and insights",
    "Best practices for success",
    "Lessons learned from experience",
    "Key strategies that work",
    "Common challenges and solutions",
    "Future predictions and opportunities",
    "Expert tips and recommendations",
    "Case study highlights",
    "Innovation in our field",
    "Building stronger outcomes",
]

MAX_CONTEXT_DOCS = 5
MAX_DOC_CHARS = 1000
DIVERSITY_WINDOW = 3

LENGTH_WORDS = {"short": "80-120", "medium": "180-220", "long": "280-350"}
LENGTH_MAX_TOKENS = {"short": 300, "medium": 500, "long": 800}

_EM_DASH = re.compile(r"\s*—\s*")
_SPACE_BEFORE_COMMA = re.compile(r"\s+,")


@dataclass
class GenerationResult:
    campaign_id: str
    posts_created: int = 0
    topics_attempted: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)


def clean_generated_body(text: str) -> str:
    """Replace em/en dashes the model slips in despite instructions."""
    text = _EM_DASH.sub(", ", text)
    text = text.replace("–", "-")
    return _SPACE_BEFORE_COMMA.sub(",", text)


def fallback_topics(count: int) -> List[str]:
    return [FALLBACK_TOPICS[i % len(FALLBACK_TOPICS)] for i in range(count)]


def resolve_topics(generation_settings: Dict[str, Any], target: int) -> List[str]:
    topics_raw = generation_settings.get("topics") or ""
    topics = [t.strip() for t in str(topics_raw).split("\n") if t.strip()]
    if topics:
        return topics

    ideas = generation_settings.get("generated_ideas") or []
    topics = [str(i).strip() for i in ideas if str(i).strip()]
    if topics:
        return topics

    return fallback_topics(target)


def _load_prompt_template(db: Session, campaign: Campaign) -> str:
    template_id = (campaign.template_ids or {}).get("text_template_id")
    if template_id:
        try:
            template = (
                db.query(PromptTemplate)
                .filter(PromptTemplate.id == UUID(str(template_id)))
                .first()
            )
        except ValueError:
            template = None
        if template and template.template:
            return template.template
    return DEFAULT_PROMPT_TEMPLATE


def build_brand_context(db: Session, campaign: Campaign) -> tuple[str, List[Dict[str, Any]]]:
    """
    Assemble the context blob from the sources the campaign locked in.

    Manual fields and website docs are on unless explicitly disabled; SharePoint
    is opt-in. Returns (context, sources_used).
    """
    source_settings = campaign.locked_source_settings or {}
    parts: List[str] = []
    sources_used: List[Dict[str, Any]] = []

    if source_settings.get("use_manual") is not False:
        fields = (
            db.query(BrandManualField)
            .filter(BrandManualField.space_id == campaign.space_id)
            .all()
        )
        if fields:
            block = "## Brand Information\n"
            for f in fields:
                if f.field_value:
                    block += f"- {f.field_name.replace('_', ' ')}: {f.field_value}\n"
            parts.append(block + "\n")
            sources_used.append({"type": "manual_profile"})

    if source_settings.get("use_website") is not False:
        docs = (
            db.query(SourceDocument)
            .filter(
                SourceDocument.space_id == campaign.space_id,
                SourceDocument.source_type == "website",
            )
            .limit(MAX_CONTEXT_DOCS)
            .all()
        )
        if docs:
            block = "## Website Content\n"
            for doc in docs:
                if doc.content and doc.content != PLACEHOLDER_CONTENT:
                    block += f"### {doc.title or 'Page'}\n{doc.content[:MAX_DOC_CHARS]}\n\n"
                    sources_used.append(
                        {"type": "website", "id": str(doc.id), "name": doc.title or "Unknown"}
                    )
            parts.append(block)

    if source_settings.get("use_sharepoint"):
        docs = (
            db.query(SourceDocument)
            .filter(
                SourceDocument.space_id == campaign.space_id,
                SourceDocument.source_type == "sharepoint",
            )
            .limit(MAX_CONTEXT_DOCS)
            .all()
        )
        if docs:
            block = "## SharePoint Documents\n"
            for doc in docs:
                if doc.content:
                    block += f"### {doc.title or 'Document'}\n{doc.content[:MAX_DOC_CHARS]}\n\n"
                    sources_used.append(
                        {"type": "sharepoint", "id": str(doc.id), "name": doc.title or "Unknown"}
                    )
            parts.append(block)

    return "".join(parts), sources_used


def _build_constraints(gen: Dict[str, Any]) -> str:
    lines = []
    for key, label in (
        ("tone_modifiers", "Tone"),
        ("audience_notes", "Audience"),
        ("length_rules", "Length"),
        ("cta_rules", "CTA"),
        ("hashtag_rules", "Hashtags"),
    ):
        if gen.get(key):
            lines.append(f"{label}: {gen[key]}")
    return "\n".join(lines)


def _format_instructions(gen: Dict[str, Any]) -> List[str]:
    length = gen.get("post_length") if gen.get("post_length") in LENGTH_WORDS else "medium"

    if gen.get("include_hashtags") is False:
        hashtags = "Do NOT include any hashtags."
    else:
        hashtags = "Include 2-4 relevant hashtags at the end."

    if gen.get("include_cta") is False:
        cta = "Do NOT include a call-to-action."
    else:
        cta = "End with a subtle call-to-action or question to encourage engagement."

    emojis = gen.get("include_emojis")
    if emojis == "none":
        emoji = "Do NOT use any emojis."
    elif emojis == "frequent":
        emoji = "Use emojis liberally throughout the post to add energy and visual interest."
    else:
        emoji = "Use 1-2 emojis sparingly to add warmth without overdoing it."

    return [
        f"Target length: {LENGTH_WORDS[length]} words",
        hashtags,
        cta,
        emoji,
        "NEVER use em-dashes or en-dashes. Use commas, periods, or colons instead.",
    ]


def build_system_prompt(
    gen: Dict[str, Any],
    brand_context: str,
    previous_bodies: List[str],
) -> str:
    sections = [
        "You are a professional LinkedIn content writer. Your task is to create "
        "engaging posts that are grounded in the provided brand context.",
        "LANGUAGE REQUIREMENT:\n"
        "- ALWAYS use British/Australian English spelling and conventions\n"
        "- Examples: specialise (not specialize), organisation (not organization), "
        "colour (not color), behaviour (not behavior), realise (not realize), "
        "centre (not center), programme (not program)\n"
        "- Never use American English spellings",
        "CRITICAL GROUNDING RULES:\n"
        "1. Only include facts, claims, or details that can be traced to the brand context provided\n"
        "2. If you cannot ground a specific detail in the context, do not include it\n"
        "3. Never make up statistics, customer testimonials, or specific achievements not in the context\n"
        "4. It's better to be general than to fabricate specifics",
        "FORMAT REQUIREMENTS:\n" + "\n".join(f"- {line}" for line in _format_instructions(gen)),
    ]

    example_post = gen.get("example_post")
    if example_post:
        sections.append(
            "STYLE REFERENCE - Match this format, structure, and voice:\n---\n"
            f"{example_post}\n---\n"
            "Analyse the above example for paragraph length, opening hook style, use of "
            "questions and hashtag approach. Match this style closely."
        )

    constraints = _build_constraints(gen)
    if constraints:
        sections.append(f"GENERATION CONSTRAINTS:\n{constraints}")

    if brand_context:
        sections.append(f"BRAND CONTEXT:\n{brand_context}")
    else:
        sections.append(
            "Note: No brand context provided, keep content general and avoid specific claims."
        )

    recent = previous_bodies[-DIVERSITY_WINDOW:]
    if recent:
        sections.append(
            "PREVIOUS POSTS (ensure diversity, do not repeat ideas):\n" + "\n---\n".join(recent)
        )

    return "\n\n".join(sections)


def build_user_prompt(topic: str, prompt_template: str) -> str:
    return (
        f'Write a LinkedIn post about this topic: "{topic}"\n\n'
        "Do NOT mention campaign names, quarter references (like Q1, Q2, Q3, Q4), or "
        "planning period labels in the post. Focus only on the topic itself.\n\n"
        f"{prompt_template.replace('{topic}', topic)}"
    )


def generate_campaign_posts(
    db: Session,
    campaign_id: str | UUID,
    count_to_generate: Optional[int] = None,
    llm: Any = None,
) -> GenerationResult:
    """
    Generate LinkedIn posts for a campaign, one completion per topic.

    Topics are processed sequentially so each prompt can see the last few
    bodies. A failed completion or insert skips that topic only; the campaign
    ends up `completed` regardless of how many posts landed. Running twice
    appends a second set of posts.
    """
    campaign = db.query(Campaign).filter(Campaign.id == UUID(str(campaign_id))).first()
    if not campaign:
        raise LookupError(f"Campaign {campaign_id} not found")

    target = int(count_to_generate or campaign.target_count or 0)
    gen = dict(campaign.generation_settings or {})
    prompt_template = _load_prompt_template(db, campaign)
    brand_context, sources_used = build_brand_context(db, campaign)
    topics = resolve_topics(gen, target)
    length = gen.get("post_length") if gen.get("post_length") in LENGTH_MAX_TOKENS else "medium"

    result = GenerationResult(campaign_id=str(campaign.id))
    bodies: List[str] = []
    log_extra = {"space_id": str(campaign.space_id), "campaign_id": str(campaign.id)}

    logger.info(
        "Generating campaign posts",
        extra={**log_extra, "step": "start"},
    )

    for i in range(min(target, len(topics))):
        topic = topics[i]
        result.topics_attempted += 1

        messages = [
            {"role": "system", "content": build_system_prompt(gen, brand_context, bodies)},
            {"role": "user", "content": build_user_prompt(topic, prompt_template)},
        ]

        try:
            completion = chat_completion(
                messages,
                max_tokens=LENGTH_MAX_TOKENS[length],
                temperature=0.7,
                client=llm,
            )
        except Exception as e:
            logger.warning(
                "Completion failed for topic %s: %s", i + 1, e,
                extra={**log_extra, "step": "completion"},
            )
            result.failures.append({"topic": topic, "sequence_number": i + 1, "error": str(e)})
            continue

        if not completion.text:
            result.failures.append({"topic": topic, "sequence_number": i + 1, "error": "empty body"})
            continue

        body = clean_generated_body(completion.text)
        meta = completion.as_meta()
        meta["tokens"] = meta.pop("total_tokens")
        meta["generated_at"] = datetime.utcnow().isoformat() + "Z"

        post = Post(
            space_id=campaign.space_id,
            campaign_id=campaign.id,
            author_id=campaign.created_by,
            title=topic,
            topic=topic,
            body=body,
            status=PostStatus.DRAFT,
            sequence_number=i + 1,
            sources_used=sources_used,
            generation_meta=meta,
            image_status=ImageStatus.NONE,
            overlay_status=OverlayStatus.NONE,
        )
        try:
            with db.begin_nested():
                db.add(post)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                "Failed to insert post %s: %s", i + 1, e,
                extra={**log_extra, "step": "insert"},
            )
            result.failures.append({"topic": topic, "sequence_number": i + 1, "error": str(e)})
            continue

        bodies.append(body)
        result.posts_created += 1

    campaign.status = CampaignStatus.COMPLETED
    db.commit()

    logger.info(
        "Campaign generation finished: %s/%s posts",
        result.posts_created,
        result.topics_attempted,
        extra={**log_extra, "step": "done"},
    )
    return result


@celery_app.task(name="app.services.campaign_posts.run_campaign_generation", bind=True, queue="generation")
def run_campaign_generation(self, campaign_id: str, count_to_generate: int | None = None):
    db: Session = SessionLocal()
    try:
        campaign = db.query(Campaign).filter(Campaign.id == UUID(campaign_id)).first()
        if not campaign:
            return None
        campaign.status = CampaignStatus.RUNNING
        db.commit()

        result = generate_campaign_posts(db, campaign_id, count_to_generate)
        return {
            "campaign_id": result.campaign_id,
            "posts_created": result.posts_created,
            "topics_attempted": result.topics_attempted,
        }
    except Exception:
        logger.exception("Campaign generation task failed", extra={"campaign_id": campaign_id})
        db.rollback()
        campaign = db.query(Campaign).filter(Campaign.id == UUID(campaign_id)).first()
        if campaign:
            campaign.status = CampaignStatus.FAILED
            db.commit()
        raise
    finally:
        db.close()
