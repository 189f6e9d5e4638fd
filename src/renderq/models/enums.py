"""String enums shared by the ORM rows, API models and workers."""

from enum import StrEnum


class JobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
PENDING_JOB_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})


class JobType(StrEnum):
    RENDER_IMAGE = "render_image"
    RENDER_CAROUSEL = "render_carousel"
    RENDER_VIDEO = "render_video"
    GENERATE_TEXT = "generate_text"
    UPLOAD = "upload"
    THUMBNAIL = "thumbnail"


class OrderStatus(StrEnum):
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class AssetKind(StrEnum):
    IMAGE = "image"
    CAROUSEL_SLIDE = "carousel_slide"
    VIDEO = "video"
    TEXT = "text"
    UPLOAD = "upload"
    THUMBNAIL = "thumbnail"


class EventLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class MonitorScope(StrEnum):
    ACCOUNT = "account"
    GLOBAL = "global"
