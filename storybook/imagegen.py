"""Illustration generation: submit a job, poll it, retry transient failures.

The image service is asynchronous. ``submit`` returns a job id and
``fetch`` reports ``picStatus``; ``"5"`` means the picture is ready.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Protocol

import requests

from .config import (
    HTTP_TIMEOUT_SEC,
    IMAGE_ASPECT_RATIO,
    IMAGE_READY_STATUS,
    IMAGE_RESOLUTION,
    IMAGE_STYLE_SUFFIX,
    POLL_INTERVAL_SEC,
    POLL_MAX_ATTEMPTS,
)
from .errors import GenerationSubmitFailed, GenerationTimeout, ServiceError
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry

log = logging.getLogger(__name__)

JobStatus = Literal["pending", "ready", "failed"]

_FAILED_STATUSES = {"-1", "fail", "failed", "error"}


@dataclass(frozen=True)
class GenerationJob:
    id: str
    status: JobStatus
    result_url: str | None = None

    @classmethod
    def from_payload(cls, job_id: str, data: dict) -> "GenerationJob":
        raw_status = str(data.get("picStatus", "")).strip().lower()
        if raw_status == IMAGE_READY_STATUS:
            status: JobStatus = "ready"
        elif raw_status in _FAILED_STATUSES:
            status = "failed"
        else:
            status = "pending"
        return cls(id=job_id, status=status, result_url=data.get("picUrl") or None)


def _is_ok(code: Any) -> bool:
    return code in (200, 0, "200", "0")


class ImageJobClient:
    """Blocking HTTP client for the image job API; call through ``asyncio.to_thread``."""

    def __init__(self, api_base: str, api_key: str, session: requests.Session | None = None):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @staticmethod
    def _check_status(resp: requests.Response, what: str) -> None:
        if resp.status_code == 429 or resp.status_code >= 500:
            raise ServiceError(resp.status_code, f"{what}: {resp.text[:200]}")
        if resp.status_code >= 400:
            raise GenerationSubmitFailed(f"{what} failed ({resp.status_code}): {resp.text[:200]}")

    def submit(self, prompt: str, reference_urls: list[str]) -> str:
        payload = {
            "prompt": prompt,
            "size": IMAGE_ASPECT_RATIO,
            "resolution": IMAGE_RESOLUTION,
            "referenceImages": reference_urls,
        }
        resp = self.session.post(self.api_base, headers=self._headers(), json=payload, timeout=HTTP_TIMEOUT_SEC)
        self._check_status(resp, "Image job submit")
        body = resp.json()
        if not _is_ok(body.get("code")):
            raise GenerationSubmitFailed(f"Image job rejected (code={body.get('code')}): {body.get('msg', '')}")
        job_id = body.get("data")
        if isinstance(job_id, dict):
            job_id = job_id.get("jobId") or job_id.get("id")
        if not job_id:
            raise GenerationSubmitFailed(f"Image job response missing job id: {body}")
        return str(job_id)

    def fetch(self, job_id: str) -> GenerationJob:
        resp = self.session.get(f"{self.api_base}/{job_id}", headers=self._headers(), timeout=HTTP_TIMEOUT_SEC)
        self._check_status(resp, "Image job poll")
        body = resp.json()
        data = body.get("data")
        if not _is_ok(body.get("code")) or not isinstance(data, dict):
            # Not terminal; the job may not be visible yet.
            log.debug("Job %s poll returned code=%s", job_id, body.get("code"))
            return GenerationJob(id=job_id, status="pending")
        return GenerationJob.from_payload(job_id, data)

    def close(self) -> None:
        self.session.close()


class Illustrator:
    def __init__(
        self,
        jobs: ImageJobClient,
        policy: RetryPolicy = DEFAULT_POLICY,
        poll_interval: float = POLL_INTERVAL_SEC,
        max_polls: int = POLL_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.jobs = jobs
        self.policy = policy
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._sleep = sleep

    def close(self) -> None:
        self.jobs.close()

    async def _poll(self, job_id: str) -> str:
        for attempt in range(1, self.max_polls + 1):
            await self._sleep(self.poll_interval)
            job = await asyncio.to_thread(self.jobs.fetch, job_id)
            log.debug("Job %s poll %d/%d: %s", job_id, attempt, self.max_polls, job.status)
            if job.status == "ready":
                if not job.result_url:
                    raise GenerationSubmitFailed(f"Image job {job_id} is ready but has no picture URL")
                return job.result_url
            if job.status == "failed":
                raise GenerationSubmitFailed(f"Image job {job_id} failed on the service side")
        raise GenerationTimeout(
            f"Image job {job_id} not ready after {self.max_polls} polls "
            f"({self.max_polls * self.poll_interval:.0f}s)"
        )

    async def _illustrate_once(self, prompt: str, reference_url: str) -> str:
        job_id = await asyncio.to_thread(self.jobs.submit, prompt, [reference_url])
        log.info("Image job %s submitted", job_id)
        return await self._poll(job_id)

    async def illustrate(self, prompt: str, reference_url: str) -> str:
        """Return the URL of an illustration for *prompt* drawn after *reference_url*."""
        final_prompt = f"{prompt.strip()}\n\n{IMAGE_STYLE_SUFFIX}"
        return await with_retry(
            self._illustrate_once, final_prompt, reference_url,
            policy=self.policy, sleep=self._sleep, label="illustration",
        )


# ---------------------------------------------------------------------------
# Placeholder illustrations
# ---------------------------------------------------------------------------

class PlaceholderProvider(Protocol):
    def __call__(self, page_number: int) -> str: ...


class StaticPlaceholder:
    """Same image for every degraded page."""

    def __init__(self, url: str):
        self.url = url

    def __call__(self, page_number: int) -> str:
        return self.url


class SeededPlaceholder:
    """Deterministic per-page image from a ``{page}`` URL template."""

    def __init__(self, template: str):
        self.template = template

    def __call__(self, page_number: int) -> str:
        return self.template.format(page=page_number)


def placeholder_from_url(url: str) -> PlaceholderProvider:
    return SeededPlaceholder(url) if "{page}" in url else StaticPlaceholder(url)
