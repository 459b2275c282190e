from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import SessionLocal
from ..models.post import ImageStatus, Post
from ..models.post_image import ImageGenerationStatus, PostImage
from .connectors.gemini import GeminiImageConnector
from .llm import chat_completion
from .storage import get_storage

logger = logging.getLogger(__name__)

ASPECT_RATIO_DIMENSIONS = {
    "1:1": (1024, 1024),
    "4:5": (1024, 1280),
    "16:9": (1920, 1080),
    "9:16": (1080, 1920),
}

DEFAULT_IMAGE_SETTINGS: Dict[str, Any] = {
    "style": "photographic",
    "include_people": True,
    "include_text": False,
    "include_logos": False,
    "aspect_ratio": "1:1",
}
DEFAULT_IMAGE_COUNT = 2

PROMPT_STYLE_BRIEFS = {
    "realistic": (
        "Create a detailed image prompt that describes a REALISTIC, believable scene.\n"
        "Focus on:\n"
        "- Real-world settings and situations\n"
        "- Natural lighting and composition\n"
        "- Professional business contexts\n"
        "- Authentic human interactions if applicable\n"
        "- High-quality photography style\n\n"
        "The image should complement the post message and resonate with a LinkedIn audience."
    ),
    "editorial": (
        "Create a detailed image prompt that is CONCEPTUAL and metaphor-driven.\n"
        "Focus on:\n"
        "- Abstract concepts made visual\n"
        "- Symbolic representations of ideas\n"
        "- Editorial or magazine-style imagery\n"
        "- Bold compositions and striking visuals\n\n"
        "The image should creatively interpret the post's message in an unexpected way."
    ),
}


@dataclass
class ImageRunResult:
    post_id: str
    generated: List[Dict[str, str]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    total_requested: int = 0

    @property
    def success(self) -> bool:
        return bool(self.generated)


@dataclass
class BulkResult:
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def build_image_prompt(prompt: str, settings: Optional[Dict[str, Any]]) -> str:
    settings = settings or {}
    enhanced = prompt
    style = settings.get("style")
    if style == "photographic":
        enhanced = f"Professional photograph: {enhanced}. High-resolution, natural lighting, realistic style."
    elif style == "illustrative":
        enhanced = f"Editorial illustration: {enhanced}. Clean, modern, vector-style illustration."

    exclusions = []
    if not settings.get("include_people"):
        exclusions.append("no people or faces")
    if not settings.get("include_text"):
        exclusions.append("no text or words")
    if not settings.get("include_logos"):
        exclusions.append("no logos or brand marks")
    if exclusions:
        enhanced += f" Requirements: {', '.join(exclusions)}."
    return enhanced


def generate_image_prompt(
    db: Session,
    post_id: str | uuid.UUID,
    space_id: str | uuid.UUID,
    style: str = "realistic",
    llm: Any = None,
) -> Dict[str, Any]:
    """
    Write an image-generation prompt for a post from its body and store it
    on the post. A post without images moves to ``prompt_ready``.
    """
    brief = PROMPT_STYLE_BRIEFS.get(style)
    if brief is None:
        raise ValueError(f"Unknown image prompt style: {style}")

    post = (
        db.query(Post)
        .filter(Post.id == uuid.UUID(str(post_id)), Post.space_id == uuid.UUID(str(space_id)))
        .first()
    )
    if not post:
        raise LookupError(f"Post {post_id} not found")
    if not (post.body or "").strip():
        raise ValueError("Post has no body to build an image prompt from")

    completion = chat_completion(
        [
            {
                "role": "system",
                "content": "You are an expert at creating image prompts for professional social media posts.\n" + brief,
            },
            {
                "role": "user",
                "content": (
                    f"POST CONTENT:\n{post.body}\n\n"
                    "Generate a concise but detailed image prompt (2-4 sentences) that would create a "
                    "compelling visual for this post. The prompt should be ready to send directly to an "
                    "image generation AI. Do NOT include any preamble or explanation, just the image prompt itself."
                ),
            },
        ],
        max_tokens=300,
        temperature=0.8,
        client=llm,
    )
    prompt = (completion.text or "").strip()
    if not prompt:
        raise RuntimeError("Image prompt generation returned no text")

    post.image_prompt = prompt
    post.image_prompt_style = style
    if post.image_status == ImageStatus.NONE:
        post.image_status = ImageStatus.PROMPT_READY
    db.commit()

    logger.info(
        "Image prompt generated",
        extra={"space_id": str(post.space_id), "post_id": str(post.id), "step": "image_prompt", "style": style},
    )
    return {"success": True, "prompt": prompt, "style": style}


def generate_post_images(
    db: Session,
    post_id: str | uuid.UUID,
    space_id: str | uuid.UUID,
    prompt: str,
    settings: Optional[Dict[str, Any]] = None,
    count: int = DEFAULT_IMAGE_COUNT,
    image_client: Optional[GeminiImageConnector] = None,
    storage: Any = None,
) -> ImageRunResult:
    """
    Generate `count` images for a post, one Gemini call each.

    A placeholder row is written before each call so the UI can show
    progress. Only the first image of a post that had none becomes primary.
    """
    if not prompt:
        raise ValueError("prompt is required")

    post_uuid = uuid.UUID(str(post_id))
    space_uuid = uuid.UUID(str(space_id))
    post = db.query(Post).filter(Post.id == post_uuid).first()
    if not post:
        raise LookupError(f"Post {post_id} not found")

    image_client = image_client or GeminiImageConnector()
    storage = storage or get_storage()
    settings = settings or {}
    width, height = ASPECT_RATIO_DIMENSIONS.get(settings.get("aspect_ratio") or "1:1", (1024, 1024))
    enhanced = build_image_prompt(prompt, settings)

    post.image_status = ImageStatus.GENERATING
    db.commit()

    existing = db.query(PostImage).filter(PostImage.post_id == post_uuid).count()
    is_first_batch = existing == 0
    result = ImageRunResult(post_id=str(post_uuid), total_requested=count)
    log_extra = {"space_id": str(space_uuid), "post_id": str(post_uuid)}

    for i in range(count):
        stamp = int(time.time() * 1000)
        record = PostImage(
            post_id=post_uuid,
            space_id=space_uuid,
            source_type="generated",
            storage_path=f"pending_{post_uuid}_{stamp}_{i}",
            prompt_used=prompt,
            settings_used=settings,
            generation_status=ImageGenerationStatus.GENERATING,
            is_primary=is_first_batch and i == 0,
            width=width,
            height=height,
        )
        db.add(record)
        db.commit()

        try:
            image = image_client.generate(enhanced)
            path = f"{space_uuid}/{post_uuid}_{stamp}_{i}.png"
            storage.upload(path, image.data, image.mime_type)
        except Exception as e:
            logger.warning("Image %s generation failed: %s", i + 1, e, extra={**log_extra, "step": "generate_image"})
            record.generation_status = ImageGenerationStatus.FAILED
            record.error_message = str(e)[:500]
            db.commit()
            result.errors.append({"index": i, "error": str(e)})
            continue

        record.storage_path = path
        record.generation_status = ImageGenerationStatus.COMPLETED
        record.file_size = len(image.data)
        record.mime_type = image.mime_type
        db.commit()
        result.generated.append({"id": str(record.id), "path": path})

    post.image_status = ImageStatus.IMAGES_AVAILABLE if result.generated else ImageStatus.FAILED
    post.image_settings = settings
    db.commit()
    return result


def bulk_generate_images(
    db: Session,
    space_id: str | uuid.UUID,
    post_ids: List[str],
    settings: Optional[Dict[str, Any]] = None,
    count: int = DEFAULT_IMAGE_COUNT,
    image_client: Optional[GeminiImageConnector] = None,
    storage: Any = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BulkResult:
    """Generate images for many posts, one after another with a fixed pause."""
    delay = get_settings().BULK_ITEM_DELAY_SECONDS
    settings = settings or dict(DEFAULT_IMAGE_SETTINGS)
    space_uuid = uuid.UUID(str(space_id))
    result = BulkResult(total=len(post_ids))

    for index, post_id in enumerate(post_ids):
        try:
            post = (
                db.query(Post)
                .filter(Post.id == uuid.UUID(str(post_id)), Post.space_id == space_uuid)
                .first()
            )
            if not post:
                result.skipped += 1
                continue
            prompt = post.image_prompt or (
                f"Professional LinkedIn post image about: {(post.body or '')[:200] or 'business content'}"
            )
            run = generate_post_images(
                db,
                post.id,
                space_uuid,
                prompt,
                settings,
                count,
                image_client=image_client,
                storage=storage,
            )
            if run.success:
                result.succeeded += 1
            else:
                result.errors.append({"post_id": str(post_id), "error": "no images generated"})
        except Exception as e:
            db.rollback()
            logger.exception("Bulk image generation failed for post", extra={"post_id": str(post_id)})
            result.errors.append({"post_id": str(post_id), "error": str(e)})

        if index < len(post_ids) - 1:
            sleep(delay)

    logger.info(
        "Bulk image generation: %s/%s posts", result.succeeded, result.total,
        extra={"space_id": str(space_uuid), "step": "bulk_images"},
    )
    return result


@celery_app.task(name="app.services.post_images.run_bulk_image_generation", bind=True, queue="generation")
def run_bulk_image_generation(self, space_id: str, post_ids: List[str], settings: Dict[str, Any] | None = None, count: int = DEFAULT_IMAGE_COUNT):
    db: Session = SessionLocal()
    image_client = GeminiImageConnector()
    try:
        result = bulk_generate_images(db, space_id, post_ids, settings, count, image_client=image_client)
        return {
            "total": result.total,
            "succeeded": result.succeeded,
            "skipped": result.skipped,
            "errors": len(result.errors),
            "finished_at": datetime.utcnow().isoformat() + "Z",
        }
    finally:
        image_client.close()
        db.close()
