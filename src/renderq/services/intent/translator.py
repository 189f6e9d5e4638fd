"""Translate a creative brief into typed job specifications."""

from renderq.models.enums import AssetKind, JobType
from renderq.models.intent import (
    CarouselRequest,
    CreativeBrief,
    GenerateTextPayload,
    ImageRequest,
    JobSpecification,
    RenderCarouselPayload,
    RenderImagePayload,
    RenderVideoPayload,
    TextRequest,
    ThumbnailPayload,
    UploadPayload,
    UploadRequest,
    VideoRequest,
)
from renderq.models.policies import JOB_TYPE_POLICIES
from renderq.services.quota.costs import cost


def _job_spec(job_type: JobType, payload, quantity: int = 1) -> JobSpecification:
    policy = JOB_TYPE_POLICIES[job_type]
    return JobSpecification(
        job_type=job_type,
        payload=payload,
        asset_kind=policy.asset_kind,
        asset_quantity=quantity,
        cost_units=cost(policy.asset_kind, quantity),
        max_attempts=policy.max_attempts,
        timeout_seconds=policy.timeout_seconds,
    )


def _image_specs(item: ImageRequest, brand_id: str | None) -> list[JobSpecification]:
    return [
        _job_spec(
            JobType.RENDER_IMAGE,
            RenderImagePayload(
                prompt=item.prompt,
                aspect_ratio=item.aspect_ratio,
                style=item.style,
                index=i,
                brand_id=brand_id,
            ),
        )
        for i in range(item.count)
    ]


def _carousel_specs(item: CarouselRequest, brand_id: str | None) -> list[JobSpecification]:
    # One job per carousel; billed per slide
    return [
        _job_spec(
            JobType.RENDER_CAROUSEL,
            RenderCarouselPayload(
                topic=item.topic,
                slides_count=item.slides,
                aspect_ratio=item.aspect_ratio,
                index=i,
                brand_id=brand_id,
            ),
            quantity=item.slides,
        )
        for i in range(item.count)
    ]


def _video_specs(item: VideoRequest, brand_id: str | None) -> list[JobSpecification]:
    specs = [
        _job_spec(
            JobType.RENDER_VIDEO,
            RenderVideoPayload(
                prompt=item.prompt,
                duration_seconds=item.duration_seconds,
                aspect_ratio=item.aspect_ratio,
                brand_id=brand_id,
            ),
        )
    ]
    specs.extend(
        _job_spec(
            JobType.THUMBNAIL,
            ThumbnailPayload(prompt=item.prompt, aspect_ratio=item.aspect_ratio, index=i, brand_id=brand_id),
        )
        for i in range(item.thumbnails)
    )
    return specs


def _text_specs(item: TextRequest, brand_id: str | None) -> list[JobSpecification]:
    return [
        _job_spec(
            JobType.GENERATE_TEXT,
            GenerateTextPayload(prompt=item.prompt, channel=item.channel, brand_id=brand_id),
        )
    ]


def _upload_specs(item: UploadRequest, brand_id: str | None) -> list[JobSpecification]:
    return [
        _job_spec(
            JobType.UPLOAD,
            UploadPayload(source_url=str(item.source_url), brand_id=brand_id),
        )
    ]


_TRANSLATORS = {
    "image": _image_specs,
    "carousel": _carousel_specs,
    "video": _video_specs,
    "text": _text_specs,
    "upload": _upload_specs,
}


def translate(brief: CreativeBrief) -> list[JobSpecification]:
    """Expand every brief item into its jobs, preserving item order."""
    specs: list[JobSpecification] = []
    for item in brief.items:
        specs.extend(_TRANSLATORS[item.kind](item, brief.brand_id))
    return specs


def required_units(specs: list[JobSpecification]) -> int:
    return sum(spec.cost_units for spec in specs)


def billed_assets(specs: list[JobSpecification]) -> dict[AssetKind, int]:
    """Asset counts per kind, for logging and order summaries."""
    totals: dict[AssetKind, int] = {}
    for spec in specs:
        totals[spec.asset_kind] = totals.get(spec.asset_kind, 0) + spec.asset_quantity
    return totals
