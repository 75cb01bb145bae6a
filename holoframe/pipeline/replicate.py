"""
Replicate predictions API: background removal and Veo-3-fast video.

Both jobs follow the same shape:
  1. POST a prediction → {id, status}
  2. While status is starting/processing: sleep, GET /predictions/{id}
  3. succeeded → output (a URL string or a list whose first item is the URL)

Background removal waits without a cap. Video generation stops after
VIDEO_MAX_POLLS polls and raises ProviderTimeoutError.
"""

import os
import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from .. import metrics
from ..errors import ConfigurationError, ProviderError, ProviderTimeoutError
from .http import error_detail, json_body, use_client
from .models import GenerationJob, JobStatus, PENDING_STATUSES, Provider

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
REPLICATE_REMBG_VERSION = os.getenv("REPLICATE_REMBG_VERSION", "")
REPLICATE_VIDEO_MODEL = os.getenv("REPLICATE_VIDEO_MODEL", "google/veo-3-fast")
REPLICATE_API_BASE = "https://api.replicate.com/v1"

POLL_INTERVAL = 2  # seconds
VIDEO_MAX_POLLS = 120  # 4 minutes

# Prefer: wait holds the create call open for up to a minute
HTTP_TIMEOUT = 90


def _headers(api_token: str, prefer_wait: bool = False) -> dict:
    headers = {
        "Authorization": f"Token {api_token}",
        "Content-Type": "application/json",
    }
    if prefer_wait:
        headers["Prefer"] = "wait"
    return headers


def _require_token(api_token: Optional[str]) -> str:
    token = api_token or REPLICATE_API_TOKEN
    if not token:
        raise ConfigurationError("REPLICATE_API_TOKEN is not set")
    return token


def extract_output(output: Any) -> Optional[str]:
    """Prediction output is a URL string or a list of URLs."""
    if isinstance(output, str) and output:
        return output
    if isinstance(output, list) and output and isinstance(output[0], str):
        return output[0]
    return None


async def create_prediction(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    api_token: str,
    prefer_wait: bool = False,
) -> dict:
    try:
        response = await client.post(url, headers=_headers(api_token, prefer_wait), json=payload)
    except httpx.HTTPError as e:
        raise ProviderError(f"Replicate request failed: {e}")

    if response.is_error:
        logger.error(f"Replicate create error {response.status_code}: {response.text[:500]}")
        raise ProviderError(
            f"Replicate request failed ({response.status_code})",
            detail=error_detail(response),
        )

    prediction = json_body(response, "Replicate")
    if not prediction.get("id"):
        raise ProviderError("Replicate returned no prediction id", detail=prediction)
    logger.info(f"Replicate prediction created: {prediction['id']} ({prediction.get('status')})")
    return prediction


async def get_prediction(client: httpx.AsyncClient, prediction_id: str, api_token: str) -> dict:
    try:
        response = await client.get(
            f"{REPLICATE_API_BASE}/predictions/{prediction_id}",
            headers=_headers(api_token),
        )
    except httpx.HTTPError as e:
        raise ProviderError(f"Replicate status check failed: {e}")

    if response.is_error:
        logger.error(f"Replicate poll error {response.status_code}: {response.text[:500]}")
        raise ProviderError(
            f"Replicate status check failed ({response.status_code})",
            detail=error_detail(response),
        )
    return json_body(response, "Replicate")


async def wait_for_prediction(
    client: httpx.AsyncClient,
    prediction: dict,
    api_token: str,
    label: str,
    poll_interval: float = POLL_INTERVAL,
    max_polls: Optional[int] = None,
) -> GenerationJob:
    """
    Poll until the prediction leaves starting/processing.

    With max_polls set, performs at most that many polls and raises
    ProviderTimeoutError if the prediction is still pending afterwards.
    """
    job = GenerationJob(
        provider=Provider.REPLICATE,
        external_id=prediction["id"],
        status=prediction.get("status") or JobStatus.STARTING.value,
    )

    while job.status in PENDING_STATUSES:
        if max_polls is not None and job.poll_count >= max_polls:
            raise ProviderTimeoutError(
                f"{label} timed out",
                detail=f"Prediction {job.external_id} still {job.status} after {job.poll_count} polls",
            )
        await asyncio.sleep(poll_interval)
        prediction = await get_prediction(client, job.external_id, api_token)
        job.poll_count += 1
        metrics.record_poll(Provider.REPLICATE.value)
        job.status = prediction.get("status")
        cap = f"/{max_polls}" if max_polls is not None else ""
        logger.info(f"Replicate poll #{job.poll_count}{cap} for {job.external_id}: status={job.status}")

    if job.status != JobStatus.SUCCEEDED.value:
        logger.error(f"Replicate prediction {job.external_id} ended as {job.status}")
        raise ProviderError(f"{label} failed", detail=prediction.get("error") or prediction)

    output = extract_output(prediction.get("output"))
    if not output:
        raise ProviderError(
            f"{label} returned an unexpected output format",
            detail=prediction.get("output"),
        )

    job.result_locator = output
    return job


# ═════════════════════════════════════════════════════════════════════════════
# Background removal (rembg)
# ═════════════════════════════════════════════════════════════════════════════

async def remove_background(
    image_url: str,
    model_version: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    api_token: Optional[str] = None,
    poll_interval: float = POLL_INTERVAL,
) -> str:
    """Run the rembg model on a public image URL. Returns the result image URL."""
    token = _require_token(api_token)
    version = model_version or REPLICATE_REMBG_VERSION
    if not version:
        raise ConfigurationError("REPLICATE_REMBG_VERSION is not set")

    logger.info(f"Background removal started: image={image_url[:80]} version={version}")

    async with use_client(client, HTTP_TIMEOUT) as http:
        prediction = await create_prediction(
            http,
            f"{REPLICATE_API_BASE}/predictions",
            {"version": version, "input": {"image": image_url}},
            token,
        )
        job = await wait_for_prediction(
            http, prediction, token,
            label="Background removal",
            poll_interval=poll_interval,
        )

    logger.info(f"Background removal done after {job.poll_count} polls: {job.result_locator}")
    return job.result_locator


# ═════════════════════════════════════════════════════════════════════════════
# Video generation (google/veo-3-fast on Replicate)
# ═════════════════════════════════════════════════════════════════════════════

async def generate_video(
    image_url: str,
    prompt: str,
    client: Optional[httpx.AsyncClient] = None,
    api_token: Optional[str] = None,
    model: Optional[str] = None,
    poll_interval: float = POLL_INTERVAL,
    max_polls: int = VIDEO_MAX_POLLS,
    on_submitted: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Generate a short looping video from an image. Returns the video URL.

    on_submitted is called with the prediction id once Replicate accepts the job.
    """
    token = _require_token(api_token)
    model = model or REPLICATE_VIDEO_MODEL

    payload = {
        "input": {
            "image": image_url,
            "last_frame": image_url,  # same frame at both ends for a clean loop
            "prompt": prompt,
            "aspect_ratio": "16:9",
            "duration": 4,
            "generate_audio": False,
            "resolution": "720p",
        }
    }

    logger.info(f"Replicate video started: model={model} image={image_url[:80]}")

    async with use_client(client, HTTP_TIMEOUT) as http:
        prediction = await create_prediction(
            http,
            f"{REPLICATE_API_BASE}/models/{model}/predictions",
            payload,
            token,
            prefer_wait=True,
        )
        if on_submitted:
            on_submitted(prediction["id"])
        job = await wait_for_prediction(
            http, prediction, token,
            label="Video generation",
            poll_interval=poll_interval,
            max_polls=max_polls,
        )

    logger.info(f"Replicate video done after {job.poll_count} polls: {job.result_locator}")
    return job.result_locator
