"""Per job type execution policy: renderer timeout, retry budget, billed asset."""

from dataclasses import dataclass

from renderq.models.enums import AssetKind, JobType


@dataclass(frozen=True)
class JobTypePolicy:
    timeout_seconds: int
    max_attempts: int
    asset_kind: AssetKind


JOB_TYPE_POLICIES: dict[JobType, JobTypePolicy] = {
    JobType.RENDER_IMAGE: JobTypePolicy(timeout_seconds=120, max_attempts=3, asset_kind=AssetKind.IMAGE),
    JobType.RENDER_CAROUSEL: JobTypePolicy(
        timeout_seconds=240, max_attempts=3, asset_kind=AssetKind.CAROUSEL_SLIDE
    ),
    # Video renders routinely take minutes
    JobType.RENDER_VIDEO: JobTypePolicy(timeout_seconds=900, max_attempts=2, asset_kind=AssetKind.VIDEO),
    JobType.GENERATE_TEXT: JobTypePolicy(timeout_seconds=60, max_attempts=3, asset_kind=AssetKind.TEXT),
    JobType.UPLOAD: JobTypePolicy(timeout_seconds=120, max_attempts=5, asset_kind=AssetKind.UPLOAD),
    JobType.THUMBNAIL: JobTypePolicy(timeout_seconds=60, max_attempts=3, asset_kind=AssetKind.THUMBNAIL),
}


def policy_for(job_type: str) -> JobTypePolicy:
    """Return the policy for a job type; unknown types raise KeyError."""
    return JOB_TYPE_POLICIES[JobType(job_type)]


def stuck_threshold_seconds(job_type: str, grace_seconds: int) -> int:
    """Seconds a job of this type may stay running before it counts as stuck."""
    return policy_for(job_type).timeout_seconds + grace_seconds
