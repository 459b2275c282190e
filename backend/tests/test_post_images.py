"""
Tests for post_images.py: per-post generation and bulk runs.
"""
import uuid

import pytest

from app.models.post import ImageStatus, Post
from app.models.post_image import ImageGenerationStatus, PostImage
from app.services.connectors.gemini import GeneratedImage
from app.services.post_images import (
    build_image_prompt,
    bulk_generate_images,
    generate_image_prompt,
    generate_post_images,
)

from tests.fixtures.spaces_fixtures import FakeLLM, FakeStorage, png_bytes, user_prompt


class FakeImageClient:
    """Returns a PNG per call; call numbers in `fail_on` (1-based) raise instead."""

    def __init__(self, fail_on=()):
        self.prompts = []
        self.fail_on = set(fail_on)

    def generate(self, prompt):
        self.prompts.append(prompt)
        if len(self.prompts) in self.fail_on:
            raise RuntimeError("No image in response")
        return GeneratedImage(data=png_bytes(64, 64), mime_type="image/png")


def _post(db, space_id, **kwargs):
    post = Post(space_id=space_id, body=kwargs.pop("body", "Cloud delivery lessons"), **kwargs)
    db.add(post)
    db.commit()
    return post


class TestBuildImagePrompt:

    def test_photographic_with_exclusions(self):
        prompt = build_image_prompt("a team meeting", {"style": "photographic", "include_people": True})
        assert prompt.startswith("Professional photograph: a team meeting.")
        assert "no text or words" in prompt
        assert "no logos or brand marks" in prompt
        assert "no people" not in prompt

    def test_no_settings_excludes_everything(self):
        prompt = build_image_prompt("skyline", None)
        assert prompt.startswith("skyline Requirements:")
        assert "no people or faces" in prompt


class TestGeneratePostImages:

    def test_partial_failure_keeps_successful_image(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id)
        storage = FakeStorage()

        result = generate_post_images(
            db, post.id, space_id, "a team meeting", {"aspect_ratio": "16:9"},
            count=2, image_client=FakeImageClient(fail_on={2}), storage=storage,
        )

        assert len(result.generated) == 1
        assert result.errors[0]["index"] == 1
        assert list(storage.files) == [result.generated[0]["path"]]

        images = db.query(PostImage).filter(PostImage.post_id == post.id).order_by(PostImage.created_at).all()
        ok = next(i for i in images if i.generation_status == ImageGenerationStatus.COMPLETED)
        failed = next(i for i in images if i.generation_status == ImageGenerationStatus.FAILED)
        assert ok.is_primary is True
        assert (ok.width, ok.height) == (1920, 1080)
        assert ok.mime_type == "image/png"
        assert failed.is_primary is False
        assert failed.error_message == "No image in response"

        db.refresh(post)
        assert post.image_status == ImageStatus.IMAGES_AVAILABLE
        assert post.image_settings == {"aspect_ratio": "16:9"}

    def test_all_failures_mark_post_failed(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id)
        result = generate_post_images(
            db, post.id, space_id, "x", count=2,
            image_client=FakeImageClient(fail_on={1, 2}), storage=FakeStorage(),
        )
        assert not result.success
        db.refresh(post)
        assert post.image_status == ImageStatus.FAILED

    def test_later_runs_do_not_claim_primary(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id)
        client, storage = FakeImageClient(), FakeStorage()
        generate_post_images(db, post.id, space_id, "first", count=1, image_client=client, storage=storage)
        generate_post_images(db, post.id, space_id, "second", count=1, image_client=client, storage=storage)

        primaries = db.query(PostImage).filter(PostImage.post_id == post.id, PostImage.is_primary.is_(True)).all()
        assert len(primaries) == 1
        assert primaries[0].prompt_used == "first"

    def test_validation(self, db):
        with pytest.raises(ValueError):
            generate_post_images(db, uuid.uuid4(), uuid.uuid4(), "", image_client=FakeImageClient())
        with pytest.raises(LookupError):
            generate_post_images(db, uuid.uuid4(), uuid.uuid4(), "p", image_client=FakeImageClient(), storage=FakeStorage())


class TestBulkGenerateImages:

    def test_uses_image_prompt_or_body_and_skips_unknown_posts(self, db):
        space_id = uuid.uuid4()
        with_prompt = _post(db, space_id, image_prompt="A lighthouse at dawn")
        without_prompt = _post(db, space_id, body="Why we moved our data platform")
        client = FakeImageClient()
        pauses = []

        result = bulk_generate_images(
            db, space_id, [str(with_prompt.id), str(uuid.uuid4()), str(without_prompt.id)],
            count=1, image_client=client, storage=FakeStorage(), sleep=pauses.append,
        )

        assert (result.total, result.succeeded, result.skipped) == (3, 2, 1)
        assert "A lighthouse at dawn" in client.prompts[0]
        assert "Professional LinkedIn post image about: Why we moved our data platform" in client.prompts[1]
        # default settings: photographic
        assert client.prompts[0].startswith("Professional photograph:")
        assert len(pauses) == 1

    def test_post_from_other_space_is_skipped(self, db):
        post = _post(db, uuid.uuid4())
        result = bulk_generate_images(
            db, uuid.uuid4(), [str(post.id)], count=1,
            image_client=FakeImageClient(), storage=FakeStorage(), sleep=lambda s: None,
        )
        assert result.skipped == 1
        assert result.succeeded == 0


class TestGenerateImagePrompt:

    def test_prompt_stored_and_status_advanced(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id, body="Three lessons from migrating 40 services to the cloud")
        llm = FakeLLM(lambda kw: "  A calm engineer reviewing a dashboard at dusk.  ")

        result = generate_image_prompt(db, post.id, space_id, "editorial", llm=llm)

        assert result == {"success": True, "prompt": "A calm engineer reviewing a dashboard at dusk.", "style": "editorial"}
        db.refresh(post)
        assert post.image_prompt == "A calm engineer reviewing a dashboard at dusk."
        assert post.image_prompt_style == "editorial"
        assert post.image_status == ImageStatus.PROMPT_READY
        assert "Three lessons from migrating 40 services" in user_prompt(llm.calls[0])
        assert "CONCEPTUAL" in llm.calls[0]["messages"][0]["content"]
        assert llm.calls[0]["max_tokens"] == 300

    def test_existing_image_status_kept(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id, image_status=ImageStatus.IMAGES_AVAILABLE)

        generate_image_prompt(db, post.id, space_id, llm=FakeLLM(lambda kw: "An office at sunrise."))

        db.refresh(post)
        assert post.image_prompt_style == "realistic"
        assert post.image_status == ImageStatus.IMAGES_AVAILABLE

    def test_validation(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id, body="   ")
        llm = FakeLLM(lambda kw: "unused")

        with pytest.raises(ValueError):
            generate_image_prompt(db, post.id, space_id, "watercolour", llm=llm)
        with pytest.raises(ValueError):
            generate_image_prompt(db, post.id, space_id, llm=llm)
        with pytest.raises(LookupError):
            generate_image_prompt(db, post.id, uuid.uuid4(), llm=llm)
        assert llm.calls == []

    def test_empty_completion_is_an_error(self, db):
        space_id = uuid.uuid4()
        post = _post(db, space_id)
        with pytest.raises(RuntimeError):
            generate_image_prompt(db, post.id, space_id, llm=FakeLLM(lambda kw: "   "))
        db.refresh(post)
        assert post.image_prompt is None
