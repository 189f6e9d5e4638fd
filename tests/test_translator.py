"""Tests for brief -> job specification translation."""

import pytest
from pydantic import ValidationError

from renderq.models.enums import AssetKind, JobType
from renderq.models.intent import CreativeBrief, EnqueueRequest
from renderq.services.intent.translator import billed_assets, required_units, translate


def _brief(*items, **extra) -> CreativeBrief:
    return CreativeBrief.model_validate({"items": list(items), **extra})


def test_images_expand_to_one_job_each():
    specs = translate(_brief({"kind": "image", "prompt": "sunset", "count": 3}, brand_id="brand_1"))
    assert [s.job_type for s in specs] == [JobType.RENDER_IMAGE] * 3
    assert [s.payload.index for s in specs] == [0, 1, 2]
    assert all(s.payload.brand_id == "brand_1" for s in specs)
    assert required_units(specs) == 3


def test_carousel_is_one_job_billed_per_slide():
    specs = translate(_brief({"kind": "carousel", "topic": "spring sale", "slides": 4}))
    assert len(specs) == 1
    spec = specs[0]
    assert spec.job_type == JobType.RENDER_CAROUSEL
    assert spec.asset_kind == AssetKind.CAROUSEL_SLIDE
    assert spec.asset_quantity == 4
    assert spec.cost_units == 8
    assert spec.payload.slides_count == 4


def test_video_with_thumbnails():
    specs = translate(_brief({"kind": "video", "prompt": "product spin", "thumbnails": 2}))
    assert [s.job_type for s in specs] == [JobType.RENDER_VIDEO, JobType.THUMBNAIL, JobType.THUMBNAIL]
    assert required_units(specs) == 25
    video = specs[0]
    assert video.max_attempts == 2
    assert video.timeout_seconds == 900


def test_free_items_cost_nothing():
    specs = translate(
        _brief(
            {"kind": "text", "prompt": "caption", "channel": "instagram"},
            {"kind": "upload", "source_url": "https://example.com/logo.png"},
        )
    )
    assert [s.job_type for s in specs] == [JobType.GENERATE_TEXT, JobType.UPLOAD]
    assert required_units(specs) == 0
    assert specs[1].payload.source_url == "https://example.com/logo.png"


def test_item_order_is_preserved_and_assets_summarised():
    specs = translate(
        _brief(
            {"kind": "carousel", "topic": "t", "slides": 3},
            {"kind": "image", "prompt": "p", "count": 2},
        )
    )
    assert [s.job_type for s in specs] == [JobType.RENDER_CAROUSEL, JobType.RENDER_IMAGE, JobType.RENDER_IMAGE]
    assert billed_assets(specs) == {AssetKind.CAROUSEL_SLIDE: 3, AssetKind.IMAGE: 2}
    assert required_units(specs) == 8


def test_payload_carries_type_tag():
    spec = translate(_brief({"kind": "image", "prompt": "p"}))[0]
    assert spec.payload.model_dump(mode="json")["type"] == "render_image"


@pytest.mark.parametrize(
    "item",
    [
        {"kind": "image", "prompt": "", "count": 1},
        {"kind": "image", "prompt": "p", "count": 11},
        {"kind": "carousel", "topic": "t", "slides": 1},
        {"kind": "video", "prompt": "p", "duration_seconds": 120},
        {"kind": "upload", "source_url": "not a url"},
        {"kind": "podcast", "prompt": "p"},
        {"kind": "image", "prompt": "p", "resolution": "8k"},
    ],
)
def test_invalid_items_rejected(item):
    with pytest.raises(ValidationError):
        _brief(item)


def test_empty_brief_rejected():
    with pytest.raises(ValidationError):
        CreativeBrief.model_validate({"items": []})


def test_short_idempotency_key_rejected():
    with pytest.raises(ValidationError):
        EnqueueRequest.model_validate({"brief": {"items": [{"kind": "image", "prompt": "p"}]}, "idempotency_key": "abc"})
