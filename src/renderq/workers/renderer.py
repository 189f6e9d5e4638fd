"""Renderer interface and the shipped renderer backends."""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field

import httpx

from renderq.errors.exceptions import RenderError
from renderq.services.idempotency import canonical_json

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    asset_url: str
    asset_meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class Renderer(ABC):
    """Abstract base class for asset renderers."""

    @abstractmethod
    async def render(self, job_type: str, payload: dict) -> RenderResult:
        """Produce the asset for one job.

        Raises:
            RenderError: ``retryable`` tells the dispatcher whether another
                attempt can succeed.
        """
        ...


_EXTENSIONS = {
    "render_image": "png",
    "render_carousel": "zip",
    "render_video": "mp4",
    "generate_text": "txt",
    "upload": "bin",
    "thumbnail": "jpg",
}


class DryRunRenderer(Renderer):
    """Deterministic fake assets for local mode; no external calls."""

    def __init__(self, base_url: str = "dryrun://assets"):
        self.base_url = base_url.rstrip("/")

    async def render(self, job_type: str, payload: dict) -> RenderResult:
        digest = hashlib.sha256(canonical_json({"t": job_type, "p": payload}).encode("utf-8")).hexdigest()[:16]
        ext = _EXTENSIONS.get(job_type, "bin")
        return RenderResult(
            asset_url=f"{self.base_url}/{job_type}/{digest}.{ext}",
            asset_meta={"renderer": "dry_run"},
        )


class HttpRenderer(Renderer):
    """POST jobs to an external rendering service.

    4xx responses mean the request itself is wrong and fail the job; 5xx and
    transport errors are retried.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def render(self, job_type: str, payload: dict) -> RenderResult:
        body = {"job_type": job_type, "payload": payload}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/render", json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            raise RenderError(f"Renderer unreachable: {exc}", retryable=True) from exc

        if resp.status_code >= 500:
            raise RenderError(f"Renderer returned HTTP {resp.status_code}", retryable=True)
        if resp.status_code >= 400:
            raise RenderError(
                f"Renderer rejected job: HTTP {resp.status_code} {resp.text[:200]}", retryable=False
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise RenderError("Renderer returned a non-JSON body", retryable=True) from exc
        if not isinstance(data, dict) or not data.get("asset_url"):
            raise RenderError("Renderer response has no asset_url", retryable=False)
        return RenderResult(asset_url=data["asset_url"], asset_meta=data.get("asset_meta") or {})
