"""Creative brief (user intent) and the per-type job payload schemas.

A brief is a list of requested assets. The intent translator turns each item
into one or more job specifications whose payload is a tagged variant keyed by
``type``; payloads are validated here, at the enqueue boundary, and are opaque
to the queue afterwards.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from renderq.models.enums import AssetKind, JobType

AspectRatio = Literal["1:1", "4:5", "9:16", "16:9"]


# ---------------------------------------------------------------------------
# Brief items
# ---------------------------------------------------------------------------


class ImageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["image"] = "image"
    prompt: str = Field(..., min_length=1, max_length=2000)
    count: int = Field(1, ge=1, le=10)
    aspect_ratio: AspectRatio = "1:1"
    style: str | None = Field(None, max_length=100)


class CarouselRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["carousel"] = "carousel"
    topic: str = Field(..., min_length=1, max_length=2000)
    slides: int = Field(5, ge=2, le=10)
    count: int = Field(1, ge=1, le=5)
    aspect_ratio: AspectRatio = "4:5"


class VideoRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["video"] = "video"
    prompt: str = Field(..., min_length=1, max_length=4000)
    duration_seconds: int = Field(8, ge=4, le=60)
    aspect_ratio: AspectRatio = "9:16"
    thumbnails: int = Field(0, ge=0, le=3)


class TextRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["text"] = "text"
    prompt: str = Field(..., min_length=1, max_length=4000)
    channel: str | None = Field(None, max_length=50)


class UploadRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["upload"] = "upload"
    source_url: HttpUrl


BriefItem = Annotated[
    Union[ImageRequest, CarouselRequest, VideoRequest, TextRequest, UploadRequest],
    Field(discriminator="kind"),
]


class CreativeBrief(BaseModel):
    """What the user asked for in one generation request."""

    model_config = ConfigDict(extra="forbid")

    items: list[BriefItem] = Field(..., min_length=1, max_length=20)
    brand_id: str | None = Field(None, max_length=128)
    campaign_name: str | None = Field(None, max_length=200)


class EnqueueRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    brief: CreativeBrief
    idempotency_key: str | None = Field(None, min_length=8, max_length=128)


# ---------------------------------------------------------------------------
# Job payloads (tagged by job type)
# ---------------------------------------------------------------------------


class RenderImagePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["render_image"] = "render_image"
    prompt: str
    aspect_ratio: AspectRatio
    style: str | None = None
    index: int = 0
    brand_id: str | None = None


class RenderCarouselPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["render_carousel"] = "render_carousel"
    topic: str
    slides_count: int
    aspect_ratio: AspectRatio
    index: int = 0
    brand_id: str | None = None


class RenderVideoPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["render_video"] = "render_video"
    prompt: str
    duration_seconds: int
    aspect_ratio: AspectRatio
    brand_id: str | None = None


class GenerateTextPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["generate_text"] = "generate_text"
    prompt: str
    channel: str | None = None
    brand_id: str | None = None


class UploadPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["upload"] = "upload"
    source_url: str
    brand_id: str | None = None


class ThumbnailPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["thumbnail"] = "thumbnail"
    prompt: str
    aspect_ratio: AspectRatio
    index: int = 0
    brand_id: str | None = None


JobPayload = Annotated[
    Union[
        RenderImagePayload,
        RenderCarouselPayload,
        RenderVideoPayload,
        GenerateTextPayload,
        UploadPayload,
        ThumbnailPayload,
    ],
    Field(discriminator="type"),
]


class JobSpecification(BaseModel):
    """One unit of renderer work derived from a brief, ready to insert."""

    model_config = ConfigDict(extra="forbid")

    job_type: JobType
    payload: JobPayload
    asset_kind: AssetKind
    asset_quantity: int = Field(..., ge=0)
    cost_units: int = Field(..., ge=0)
    max_attempts: int = Field(..., ge=1)
    timeout_seconds: int = Field(..., ge=1)
