"""Renderer registry mapping job types to renderer instances."""

from renderq.config import settings
from renderq.models.enums import JobType
from renderq.models.policies import policy_for
from renderq.workers.renderer import DryRunRenderer, HttpRenderer, Renderer


def build_registry() -> dict[str, Renderer]:
    """One renderer per job type, from settings.

    HTTP renderers get the job type's own timeout so long renders are not cut
    short by the client before the dispatcher's deadline.
    """
    if not settings.renderer_url:
        renderer = DryRunRenderer()
        return {job_type.value: renderer for job_type in JobType}
    return {
        job_type.value: HttpRenderer(
            settings.renderer_url,
            api_key=settings.renderer_api_key,
            timeout=float(policy_for(job_type.value).timeout_seconds),
        )
        for job_type in JobType
    }


_registry: dict[str, Renderer] = {}


def _ensure_registry() -> None:
    if not _registry:
        _registry.update(build_registry())


def register_renderer(job_type: str, renderer: Renderer) -> None:
    """Register a renderer for a job type."""
    _ensure_registry()
    _registry[job_type] = renderer


def get_renderer(job_type: str) -> Renderer | None:
    """Get the renderer for a job type."""
    _ensure_registry()
    return _registry.get(job_type)


def reset_registry() -> None:
    _registry.clear()
