"""
Background removal via remove.bg, used when exporting frames.
"""

import base64
import logging
import random
import time

import requests

from .pipeline.errors import TransportError

logger = logging.getLogger(__name__)

REMOVEBG_URL = "https://api.remove.bg/v1.0/removebg"

# ── Retry configuration ──────────────────────────────────────────────────────
MAX_RETRIES = 4
BASE_DELAY = 1.0       # seconds, doubles each retry: 1, 2, 4, 8
JITTER_MAX = 0.5
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


class RemoveBgClient:
    def __init__(self, api_key: str, url: str = REMOVEBG_URL, base_delay: float = BASE_DELAY):
        self.api_key = api_key
        self.url = url
        self.base_delay = base_delay

    def _request_with_backoff(self, payload: dict) -> requests.Response:
        """
        POST with exponential backoff on 429/5xx and network errors.

        Uses: base_delay * 2^attempt + random jitter, honouring Retry-After.
        """
        headers = {"X-Api-Key": self.api_key, "Content-Type": "application/json"}

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = requests.post(self.url, json=payload, headers=headers, timeout=60)
            except requests.exceptions.RequestException as e:
                if attempt >= MAX_RETRIES:
                    raise TransportError(f"remove.bg request failed: {e}") from e
                delay = self.base_delay * (2 ** attempt) + random.uniform(0, JITTER_MAX)
                logger.warning(
                    f"remove.bg request error on attempt {attempt + 1}/{MAX_RETRIES + 1}: {e}, "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                continue

            if response.status_code not in RETRYABLE_STATUS_CODES:
                if not response.ok:
                    raise TransportError(
                        f"Background removal failed: {response.status_code} {response.text[:200]}",
                        status_code=response.status_code,
                    )
                return response

            if attempt >= MAX_RETRIES:
                raise TransportError(
                    f"Background removal failed after {MAX_RETRIES + 1} attempts: {response.status_code}",
                    status_code=response.status_code,
                )

            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                delay = int(retry_after)
            else:
                delay = self.base_delay * (2 ** attempt) + random.uniform(0, JITTER_MAX)
            logger.warning(
                f"remove.bg {response.status_code} on attempt {attempt + 1}/{MAX_RETRIES + 1}, "
                f"retrying in {delay:.1f}s"
            )
            time.sleep(delay)

        raise TransportError("Background removal failed")

    def remove_background(self, image: bytes) -> bytes:
        """Return the image with its background removed (PNG bytes)."""
        if not self.api_key:
            raise TransportError("REMOVEBG_API_KEY not configured")

        response = self._request_with_backoff({
            "image_file_b64": base64.b64encode(image).decode("ascii"),
            "size": "auto",
        })
        logger.info(f"Background removed: {len(image)} → {len(response.content)} bytes")
        return response.content
