"""
Veo video generation over the Generative Language REST API.

  submit → POST models/{model}:predictLongRunning
  poll   → GET  {operation name}
  fetch  → GET  provider-hosted video URI (authenticated)

Each call is a single request; the gateway owns polling and fallback.
"""

import asyncio
import base64
import logging
import random
from typing import Optional
from urllib.parse import urlparse

import httpx

from .pipeline.errors import RateLimited, TransportError, UnsupportedOutputReference
from .pipeline.gateway import Operation, VideoEntry, VideoRequest

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# Hosts allowed to receive the API key when downloading generated videos.
HOSTED_VIDEO_HOSTS = {"generativelanguage.googleapis.com"}

REQUEST_TIMEOUT = 60.0
DOWNLOAD_TIMEOUT = 300.0

# ── Retry configuration ──────────────────────────────────────────────────────
# 429 is not retried here: a rate limit moves the gateway on to the next model.
MAX_RETRIES = 3
BASE_DELAY = 2.0       # seconds, doubles each retry: 2, 4, 8
JITTER_MAX = 1.0
RETRYABLE_STATUS_CODES = {502, 503, 504}


def _parse_operation(data: dict) -> Operation:
    error = data.get("error")
    response = data.get("response") or {}
    result = response.get("generateVideoResponse") or response
    samples = (
        result.get("generatedSamples")
        or result.get("generatedVideos")
        or result.get("videos")
        or []
    )

    videos = []
    for sample in samples:
        video = sample.get("video") or sample
        encoded = video.get("bytesBase64Encoded") or video.get("videoBytes")
        videos.append(VideoEntry(
            data=base64.b64decode(encoded) if encoded else None,
            uri=video.get("uri"),
            mime_type=video.get("mimeType") or video.get("encoding") or "video/mp4",
        ))

    error_message = error_code = None
    if error:
        error_message = error.get("message") or str(error)
        error_code = error.get("status") or (str(error["code"]) if "code" in error else None)

    return Operation(
        name=data.get("name", ""),
        done=bool(data.get("done")),
        videos=videos,
        error=error_message,
        error_code=error_code,
    )


class VeoClient:
    def __init__(
        self,
        api_key: str,
        api_base: str = API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = BASE_DELAY,
    ):
        if not api_key:
            logger.warning("GEMINI_API_KEY not set, video generation will fail")
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._retry_delay = retry_delay

    def _client(self, timeout: float = REQUEST_TIMEOUT, authenticated: bool = True) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self.api_key} if authenticated else None,
            follow_redirects=not authenticated,
        )

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float = REQUEST_TIMEOUT,
        authenticated: bool = True,
        **kwargs,
    ) -> httpx.Response:
        """
        Make a request with exponential backoff on 502/503/504.

        429 → RateLimited, any other HTTP or network failure → TransportError.
        """
        for attempt in range(MAX_RETRIES + 1):
            try:
                async with self._client(timeout, authenticated) as client:
                    response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise TransportError(f"Veo request failed: {e}") from e

            if response.status_code == 429:
                raise RateLimited(
                    f"Veo rate limit: {response.text[:300]}",
                    status_code=429,
                    body=response.text,
                )

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < MAX_RETRIES:
                delay = self._retry_delay * (2 ** attempt) + random.uniform(0, JITTER_MAX)
                logger.warning(
                    f"Veo {response.status_code} on attempt {attempt + 1}/{MAX_RETRIES + 1}, "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise TransportError(
                    f"Veo API error {response.status_code}: {response.text[:300]}",
                    status_code=response.status_code,
                    body=response.text,
                )
            return response

        raise TransportError(f"Veo request failed after {MAX_RETRIES + 1} attempts")

    # ── VideoProvider ────────────────────────────────────────────────────

    async def submit(self, model: str, request: VideoRequest) -> Operation:
        body = {
            "instances": [{
                "prompt": request.prompt,
                "image": {
                    "bytesBase64Encoded": base64.b64encode(request.image).decode("ascii"),
                    "mimeType": request.mime_type,
                },
            }],
            "parameters": {
                "aspectRatio": request.aspect_ratio,
                "durationSeconds": request.duration_seconds,
                "seed": request.seed,
            },
        }
        response = await self._request(
            "POST", f"{self.api_base}/models/{model}:predictLongRunning", json=body
        )
        operation = _operation_from(response)
        if not operation.name:
            raise TransportError(f"Veo submit returned no operation name: {response.text[:300]}")
        return operation

    async def poll(self, model: str, handle: str) -> Operation:
        response = await self._request("GET", f"{self.api_base}/{handle}")
        return _operation_from(response)

    def is_hosted(self, uri: str) -> bool:
        parsed = urlparse(uri)
        return parsed.scheme == "https" and parsed.hostname in HOSTED_VIDEO_HOSTS

    async def fetch(self, uri: str) -> bytes:
        """
        Download a provider-hosted video.

        Only the API host gets the key. A redirect (usually to a signed
        storage URL) is followed with a plain request.
        """
        if not self.is_hosted(uri):
            raise UnsupportedOutputReference(f"Refusing to send credentials to {uri}")

        response = await self._request("GET", uri, timeout=DOWNLOAD_TIMEOUT)
        if response.is_redirect:
            location = str(response.url.join(response.headers["location"]))
            logger.info(f"Video download redirected to {urlparse(location).hostname}")
            response = await self._request(
                "GET", location, timeout=DOWNLOAD_TIMEOUT, authenticated=False
            )
        logger.info(f"Downloaded video: {len(response.content)} bytes")
        return response.content

    async def list_models(self) -> list[str]:
        response = await self._request("GET", f"{self.api_base}/models", params={"pageSize": 1000})
        try:
            names = [m.get("name", "") for m in response.json().get("models", [])]
        except (AttributeError, TypeError, ValueError) as e:
            raise TransportError(f"Veo returned an invalid model list: {response.text[:300]}") from e
        return [n.removeprefix("models/") for n in names if "veo" in n.lower()]


def _operation_from(response: httpx.Response) -> Operation:
    """Decode an operation body; anything unreadable is a TransportError."""
    try:
        return _parse_operation(response.json())
    except (AttributeError, TypeError, ValueError) as e:
        raise TransportError(
            f"Veo returned an invalid response: {response.text[:300]}",
            status_code=response.status_code,
            body=response.text,
        ) from e
