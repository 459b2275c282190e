from __future__ import annotations

import io
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
from PIL import Image
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import SessionLocal
from ..models.brand import BrandProfile
from ..models.post import OverlayStatus, Post
from ..models.post_image import ImageGenerationStatus, PostImage
from .storage import get_storage

logger = logging.getLogger(__name__)

LOGO_OVERLAY_MARKER = "[LOGO OVERLAY]"
LOGO_POSITIONS = ("top-left", "bottom-right", "both", "main-top-left")

MAX_LOGO_FRACTION = 0.15
MARGIN_FRACTION = 0.03


@dataclass
class LogoConfig:
    top_left: Optional[str] = None
    bottom_right: Optional[str] = None

    def as_dict(self) -> Dict[str, str]:
        out = {}
        if self.top_left:
            out["top_left"] = self.top_left
        if self.bottom_right:
            out["bottom_right"] = self.bottom_right
        return out

    def label(self) -> str:
        return " ".join(p for p in (
            "top-left" if self.top_left else "",
            "bottom-right" if self.bottom_right else "",
        ) if p)


@dataclass
class BulkLogoResult:
    total: int = 0
    applied: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def is_logo_overlay(image: PostImage) -> bool:
    return bool(image.prompt_used and image.prompt_used.startswith(LOGO_OVERLAY_MARKER))


def resolve_logo_config(brand: Optional[BrandProfile], position: str) -> LogoConfig:
    if position not in LOGO_POSITIONS:
        raise ValueError(f"Unknown logo position: {position}")
    if brand is None:
        raise ValueError("Brand profile not found")

    config = LogoConfig()
    if position in ("top-left", "both"):
        config.top_left = brand.logo_top_left_url or brand.logo_url
    if position == "main-top-left":
        config.top_left = brand.logo_url
    if position in ("bottom-right", "both"):
        config.bottom_right = brand.logo_bottom_right_url or brand.logo_url

    if not config.top_left and not config.bottom_right:
        raise ValueError("No logos configured in brand profile")
    return config


def logo_options(brand: BrandProfile) -> List[LogoConfig]:
    """Combinations used when randomising logos across a bulk run."""
    options = [
        LogoConfig(brand.logo_url, brand.logo_bottom_right_url),
        LogoConfig(brand.logo_top_left_url, brand.logo_bottom_right_url),
        LogoConfig(brand.logo_url, None),
        LogoConfig(brand.logo_top_left_url, None),
        LogoConfig(None, brand.logo_bottom_right_url),
    ]
    return [o for o in options if o.top_left or o.bottom_right]


def _fit_logo(logo: Image.Image, width: int, height: int) -> Image.Image:
    max_w = width * MAX_LOGO_FRACTION
    max_h = height * MAX_LOGO_FRACTION
    aspect = logo.width / logo.height
    logo_w = max_w
    logo_h = logo_w / aspect
    if logo_h > max_h:
        logo_h = max_h
        logo_w = logo_h * aspect
    return logo.resize((max(1, round(logo_w)), max(1, round(logo_h))), Image.LANCZOS)


def composite_logos(
    image_bytes: bytes,
    top_left: Optional[bytes] = None,
    bottom_right: Optional[bytes] = None,
) -> tuple[bytes, int, int]:
    """
    Paste logos onto an image and return (png_bytes, width, height).

    Each logo keeps its aspect ratio and is capped at 15% of the image width
    and height, inset by a 3% margin.
    """
    base = Image.open(io.BytesIO(image_bytes)).convert("RGBA")
    width, height = base.size
    margin_x = round(width * MARGIN_FRACTION)
    margin_y = round(height * MARGIN_FRACTION)

    if top_left:
        logo = _fit_logo(Image.open(io.BytesIO(top_left)).convert("RGBA"), width, height)
        base.paste(logo, (margin_x, margin_y), logo)

    if bottom_right:
        logo = _fit_logo(Image.open(io.BytesIO(bottom_right)).convert("RGBA"), width, height)
        base.paste(logo, (width - logo.width - margin_x, height - logo.height - margin_y), logo)

    buf = io.BytesIO()
    base.save(buf, format="PNG")
    return buf.getvalue(), width, height


def fetch_logo(url: str) -> bytes:
    resp = httpx.get(url, timeout=30, follow_redirects=True)
    resp.raise_for_status()
    return resp.content


def _composite_for(
    source: PostImage,
    config: LogoConfig,
    storage: Any,
    logo_fetcher: Callable[[str], bytes],
) -> tuple[bytes, int, int]:
    image_bytes = storage.download(source.storage_path)
    top_left = logo_fetcher(config.top_left) if config.top_left else None
    bottom_right = logo_fetcher(config.bottom_right) if config.bottom_right else None
    return composite_logos(image_bytes, top_left, bottom_right)


def apply_logo(
    db: Session,
    image_id: str | uuid.UUID,
    post_id: str | uuid.UUID,
    space_id: str | uuid.UUID,
    position: str,
    storage: Any = None,
    logo_fetcher: Callable[[str], bytes] = fetch_logo,
) -> Dict[str, Any]:
    image_uuid = uuid.UUID(str(image_id))
    post_uuid = uuid.UUID(str(post_id))
    space_uuid = uuid.UUID(str(space_id))
    storage = storage or get_storage()

    source = db.query(PostImage).filter(PostImage.id == image_uuid).first()
    if not source:
        raise LookupError("Source image not found")
    brand = db.query(BrandProfile).filter(BrandProfile.space_id == space_uuid).first()
    config = resolve_logo_config(brand, position)

    post = db.query(Post).filter(Post.id == post_uuid).first()
    if not post:
        raise LookupError(f"Post {post_id} not found")

    data, width, height = _composite_for(source, config, storage, logo_fetcher)
    path = f"{post_uuid}/{int(time.time() * 1000)}_logo.png"
    storage.upload(path, data, "image/png")

    new_image = PostImage(
        post_id=post_uuid,
        space_id=space_uuid,
        source_type="generated",
        storage_path=path,
        generation_status=ImageGenerationStatus.COMPLETED,
        is_primary=True,
        width=width,
        height=height,
        file_size=len(data),
        mime_type="image/png",
        prompt_used=f"{LOGO_OVERLAY_MARKER} {position} (from image {image_uuid})",
    )
    db.add(new_image)
    source.is_primary = False

    post.final_image_path = path
    post.overlay_status = OverlayStatus.READY
    post.publish_snapshot = {
        "logo_overlay": config.as_dict(),
        "source_image": source.storage_path,
        "composited_image": path,
    }
    db.commit()

    logger.info("Logo overlay applied", extra={"space_id": str(space_uuid), "post_id": str(post_uuid), "step": "apply_logo"})
    return {
        "final_image_path": path,
        "new_image_id": str(new_image.id),
        "logo_config": config.as_dict(),
    }


def bulk_apply_logos(
    db: Session,
    space_id: str | uuid.UUID,
    post_ids: List[str],
    randomize_logo: bool = True,
    randomize_primary: bool = True,
    storage: Any = None,
    logo_fetcher: Callable[[str], bytes] = fetch_logo,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BulkLogoResult:
    """
    Apply logos to the images of many posts.

    Only completed images that are not themselves logo composites are
    eligible, so re-running never stacks logos on logos. Posts with no
    eligible image are skipped.
    """
    space_uuid = uuid.UUID(str(space_id))
    storage = storage or get_storage()
    rng = rng or random.Random()
    delay = get_settings().BULK_ITEM_DELAY_SECONDS

    brand = db.query(BrandProfile).filter(BrandProfile.space_id == space_uuid).first()
    if not brand:
        raise ValueError("No brand profile found")
    options = logo_options(brand)
    default_config = LogoConfig(brand.logo_url or brand.logo_top_left_url, brand.logo_bottom_right_url)
    if not options and not (default_config.top_left or default_config.bottom_right):
        raise ValueError("No logos configured in brand profile")

    result = BulkLogoResult(total=len(post_ids))

    for index, post_id in enumerate(post_ids):
        try:
            post_uuid = uuid.UUID(str(post_id))
            images = (
                db.query(PostImage)
                .filter(
                    PostImage.post_id == post_uuid,
                    PostImage.space_id == space_uuid,
                    PostImage.generation_status == ImageGenerationStatus.COMPLETED,
                )
                .order_by(PostImage.created_at.asc())
                .all()
            )
            eligible = [img for img in images if not is_logo_overlay(img)]
            if not eligible:
                result.skipped += 1
                continue

            source = rng.choice(eligible) if randomize_primary else eligible[0]
            config = rng.choice(options) if randomize_logo and options else default_config

            data, width, height = _composite_for(source, config, storage, logo_fetcher)
            path = f"{post_uuid}/{int(time.time() * 1000)}_with_logo.png"
            storage.upload(path, data, "image/png")

            for img in images:
                img.is_primary = False
            db.add(
                PostImage(
                    post_id=post_uuid,
                    space_id=space_uuid,
                    source_type="generated",
                    storage_path=path,
                    generation_status=ImageGenerationStatus.COMPLETED,
                    is_primary=True,
                    width=width,
                    height=height,
                    file_size=len(data),
                    mime_type="image/png",
                    prompt_used=f"{LOGO_OVERLAY_MARKER} {config.label()} (from {source.id})",
                )
            )
            db.commit()
            result.applied += 1
        except Exception as e:
            db.rollback()
            logger.warning("Logo application failed for post %s: %s", post_id, e, extra={"step": "bulk_logo"})
            result.errors.append({"post_id": str(post_id), "error": str(e)})

        if index < len(post_ids) - 1:
            sleep(delay)

    logger.info(
        "Bulk logo application: %s applied, %s skipped", result.applied, result.skipped,
        extra={"space_id": str(space_uuid), "step": "bulk_logo"},
    )
    return result


@celery_app.task(name="app.services.logo_overlay.run_bulk_logo_application", bind=True, queue="generation")
def run_bulk_logo_application(self, space_id: str, post_ids: List[str], randomize_logo: bool = True, randomize_primary: bool = True):
    db: Session = SessionLocal()
    try:
        result = bulk_apply_logos(db, space_id, post_ids, randomize_logo, randomize_primary)
        return {
            "total": result.total,
            "applied": result.applied,
            "skipped": result.skipped,
            "errors": len(result.errors),
            "finished_at": datetime.utcnow().isoformat() + "Z",
        }
    finally:
        db.close()
