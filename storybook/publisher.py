"""Publish the reference still to object storage with short-lived credentials.

Flow: ask the credential broker for a scoped temporary key, build a unique
object key, PUT the JPEG, return the public URL. The image generation
service fetches the reference image from that URL, so every failure here
is fatal for the request.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import requests

from .assets import StillImage
from .config import HTTP_TIMEOUT_SEC
from .errors import AssetPublishFailed

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadCredentials:
    tmp_id: str
    tmp_secret: str
    session_token: str
    start_time: int
    expired_time: int
    bucket: str
    region: str

    @classmethod
    def from_payload(cls, data: dict) -> "UploadCredentials":
        """Accept the flat broker shape or the nested STS ``credentials`` shape."""
        creds = data.get("credentials") or {}
        try:
            return cls(
                tmp_id=data.get("tmpId") or creds["tmpSecretId"],
                tmp_secret=data.get("tmpSecret") or creds["tmpSecretKey"],
                session_token=data.get("sessionToken") or creds["sessionToken"],
                start_time=int(data.get("startTime", 0)),
                expired_time=int(data.get("expiredTime", 0)),
                bucket=data["bucket"],
                region=data["region"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AssetPublishFailed(f"Credential broker returned an incomplete payload: missing {e}") from e


# (credentials, key, body, content_type) -> None
Uploader = Callable[[UploadCredentials, str, bytes, str], None]


def make_object_key(now: datetime | None = None, suffix: str | None = None) -> str:
    """Time-prefixed, randomly-suffixed key, e.g. ``storybook/20261019/1792400000000-9f2c61ab.jpg``."""
    now = now or datetime.now(timezone.utc)
    suffix = suffix or secrets.token_hex(4)
    return f"storybook/{now:%Y%m%d}/{int(now.timestamp() * 1000)}-{suffix}.jpg"


def object_url(bucket: str, region: str, key: str) -> str:
    return f"https://{bucket}.cos.{region}.myqcloud.com/{key}"


def cos_upload(credentials: UploadCredentials, key: str, body: bytes, content_type: str) -> None:
    """PUT *body* to the bucket named in *credentials* (blocking)."""
    from qcloud_cos import CosConfig, CosS3Client

    cos_config = CosConfig(
        Region=credentials.region,
        SecretId=credentials.tmp_id,
        SecretKey=credentials.tmp_secret,
        Token=credentials.session_token,
        Scheme="https",
    )
    client = CosS3Client(cos_config)
    client.put_object(
        Bucket=credentials.bucket,
        Body=body,
        Key=key,
        ContentType=content_type,
    )


class AssetPublisher:
    def __init__(
        self,
        credential_url: str,
        session: requests.Session | None = None,
        uploader: Uploader = cos_upload,
    ):
        self.credential_url = credential_url
        self.session = session or requests.Session()
        self.uploader = uploader

    def close(self) -> None:
        self.session.close()

    def _fetch_credentials_sync(self) -> UploadCredentials:
        resp = self.session.get(self.credential_url, timeout=HTTP_TIMEOUT_SEC)
        if resp.status_code != 200:
            raise AssetPublishFailed(f"Credential broker failed ({resp.status_code}): {resp.text[:200]}")
        try:
            envelope = resp.json()
        except ValueError as e:
            raise AssetPublishFailed("Credential broker returned non-JSON body") from e

        code = envelope.get("code")
        if code not in (200, 0, "200", "0"):
            raise AssetPublishFailed(f"Credential broker refused request (code={code}): {envelope.get('msg', '')}")
        data = envelope.get("data")
        if not isinstance(data, dict):
            raise AssetPublishFailed(f"Credential broker response missing data: {envelope}")

        creds = UploadCredentials.from_payload(data)
        if creds.expired_time and creds.expired_time <= int(time.time()):
            raise AssetPublishFailed("Credential broker returned already-expired credentials")
        return creds

    async def fetch_credentials(self) -> UploadCredentials:
        if not self.credential_url:
            raise AssetPublishFailed("No credential broker URL configured (STORYBOOK_CREDENTIAL_URL).")
        try:
            return await asyncio.to_thread(self._fetch_credentials_sync)
        except AssetPublishFailed:
            raise
        except requests.RequestException as e:
            raise AssetPublishFailed(f"Credential broker unreachable: {e}") from e

    async def publish(self, still: StillImage) -> str:
        """Upload *still* and return its public URL."""
        creds = await self.fetch_credentials()
        key = make_object_key()
        log.info("Uploading reference image (%d bytes) to %s/%s", len(still.data), creds.bucket, key)
        try:
            await asyncio.to_thread(self.uploader, creds, key, still.data, still.mime_type)
        except Exception as e:
            raise AssetPublishFailed(f"Upload to {creds.bucket} failed: {e}") from e

        url = object_url(creds.bucket, creds.region, key)
        log.info("Reference image published: %s", url)
        return url
