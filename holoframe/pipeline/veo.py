"""
Veo image-to-video on Vertex AI (long-running predict).

  submit:  POST .../models/{model}:predictLongRunning      → {name}
  poll:    POST .../models/{model}:fetchPredictOperation   {operationName}
  done:    the finished operation carries the video location in one of
           several response shapes; see parse_operation_result().

Every call is authenticated with a bearer token from holoframe.google_auth.
"""

import os
import re
import base64
import asyncio
import logging
from typing import Callable, Optional, Tuple

import httpx

from .. import metrics
from ..errors import (
    ConfigurationError,
    ProviderError,
    ProviderTimeoutError,
    RequestValidationError,
    StorageError,
)
from ..google_auth import GoogleTokenProvider, get_token_provider
from .http import error_detail, json_body, use_client
from .models import GenerationJob, JobStatus, Provider, VideoResult, VideoResultKind

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

GOOGLE_PROJECT_ID = os.getenv("GOOGLE_PROJECT_ID", "")
GOOGLE_LOCATION = os.getenv("GOOGLE_LOCATION", "us-central1")
VEO_MODEL_ID = os.getenv("VEO_MODEL_ID", "veo-3.1-fast-generate-preview")
VEO_ASPECT_RATIO = os.getenv("VEO_ASPECT_RATIO", "16:9")
VEO_DURATION_SECONDS = int(os.getenv("VEO_DURATION_SECONDS", "4"))
VEO_RESOLUTION = os.getenv("VEO_RESOLUTION", "720p")
VEO_PERSON_GENERATION = os.getenv("VEO_PERSON_GENERATION", "allow_adult")
VEO_OUTPUT_STORAGE_URI = os.getenv("VEO_OUTPUT_STORAGE_URI", "")

POLL_INTERVAL = 20  # seconds
MAX_POLL_ATTEMPTS = 180  # 60 minutes max

HTTP_TIMEOUT = 60

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)


# ── Helpers ──────────────────────────────────────────────────────────────────

def model_endpoint(project_id: str, location: str = GOOGLE_LOCATION, model: str = VEO_MODEL_ID) -> str:
    return (
        f"https://{location}-aiplatform.googleapis.com/v1/projects/{project_id}"
        f"/locations/{location}/publishers/google/models/{model}"
    )


def gs_to_https(uri: str) -> str:
    """gs://bucket/object → https://storage.googleapis.com/bucket/object"""
    if uri.startswith("gs://"):
        return "https://storage.googleapis.com/" + uri[len("gs://"):]
    return uri


def split_data_url(value: str) -> Tuple[str, Optional[str]]:
    """Strip a data: URL prefix. Returns (base64 payload, mime type or None)."""
    match = _DATA_URL.match(value)
    if match:
        return match.group("data"), match.group("mime")
    return value, None


def _first(items):
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def parse_operation_result(operation: dict) -> VideoResult:
    """
    Find the video location in a finished operation.

    Shapes are probed in order:
      response.predictions[0].storageUri
      response.videos[0].gcsUri
      response.generateVideoResponse.generatedVideos[0].video.uri|url
      base64 bytes with no URI (returned when no storageUri was requested)
    """
    response = operation.get("response") or {}

    prediction = _first(response.get("predictions"))
    if prediction and prediction.get("storageUri"):
        return VideoResult(kind=VideoResultKind.STORAGE_URI_PREDICTION, uri=prediction["storageUri"])

    video = _first(response.get("videos"))
    if video and video.get("gcsUri"):
        return VideoResult(kind=VideoResultKind.GCS_URI_VIDEO, uri=video["gcsUri"])

    generated = _first((response.get("generateVideoResponse") or {}).get("generatedVideos"))
    if generated:
        inner = generated.get("video") or {}
        uri = inner.get("uri") or inner.get("url")
        if uri:
            return VideoResult(kind=VideoResultKind.GENERATED_VIDEO, uri=uri)

    for item in (prediction, video):
        if item and item.get("bytesBase64Encoded"):
            return VideoResult(kind=VideoResultKind.INLINE_BYTES)

    return VideoResult(kind=VideoResultKind.UNRECOGNIZED)


def resolve_video_uri(operation: dict) -> str:
    """
    Raw video URI (gs:// or https) of a done operation.

    Raises ProviderError when the operation failed or its response shape
    carries no usable URI.
    """
    error = operation.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ProviderError(f"Veo video generation failed: {message}", detail=error)

    result = parse_operation_result(operation)
    if result.kind == VideoResultKind.INLINE_BYTES:
        raise ProviderError(
            "Veo returned inline video bytes; set VEO_OUTPUT_STORAGE_URI to a gs:// location",
        )
    if result.kind == VideoResultKind.UNRECOGNIZED:
        logger.error(f"Unrecognized Veo response: {str(operation)[:1000]}")
        raise ProviderError(
            "Veo operation finished without a video URI",
            detail=operation.get("response"),
        )

    logger.info(f"Veo result ({result.kind.value}): {result.uri}")
    return result.uri


def _resolve_project(provider: GoogleTokenProvider, project_id: Optional[str]) -> str:
    project = project_id or GOOGLE_PROJECT_ID or provider.source.project_id
    if not project:
        raise ConfigurationError("GOOGLE_PROJECT_ID is not set")
    return project


async def _bearer_headers(provider: GoogleTokenProvider) -> dict:
    # Token refresh is a blocking HTTP call in google-auth
    token = await asyncio.to_thread(provider.get_access_token)
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


async def _load_image(
    client: httpx.AsyncClient,
    image_url: Optional[str],
    image_base64: Optional[str],
    mime_type: Optional[str],
) -> Tuple[str, str]:
    if image_base64:
        data, data_mime = split_data_url(image_base64)
        return data, mime_type or data_mime or "image/png"

    if not image_url:
        raise RequestValidationError("Veo needs an image: pass imageUrl or imageBase64")

    try:
        resp = await client.get(image_url)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise StorageError(f"Failed to download source image: {e}", detail=image_url)

    content_type = resp.headers.get("content-type", "").split(";")[0].strip()
    mime = mime_type or (content_type if content_type.startswith("image/") else "image/png")
    return base64.b64encode(resp.content).decode("ascii"), mime


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════

async def submit_operation(
    prompt: str,
    image_url: Optional[str] = None,
    image_base64: Optional[str] = None,
    mime_type: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    token_provider: Optional[GoogleTokenProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
    project_id: Optional[str] = None,
) -> str:
    """Start a Veo generation. Returns the long-running operation name."""
    provider = token_provider or get_token_provider()
    project = _resolve_project(provider, project_id)

    async with use_client(client, HTTP_TIMEOUT) as http:
        encoded, mime = await _load_image(http, image_url, image_base64, mime_type)

        parameters = {
            "aspectRatio": aspect_ratio or VEO_ASPECT_RATIO,
            "durationSeconds": VEO_DURATION_SECONDS,
            "resolution": VEO_RESOLUTION,
            "personGeneration": VEO_PERSON_GENERATION,
            "sampleCount": 1,
            "generateAudio": False,
        }
        if VEO_OUTPUT_STORAGE_URI:
            parameters["storageUri"] = VEO_OUTPUT_STORAGE_URI

        payload = {
            "instances": [{
                "prompt": prompt,
                "image": {"bytesBase64Encoded": encoded, "mimeType": mime},
            }],
            "parameters": parameters,
        }

        url = f"{model_endpoint(project)}:predictLongRunning"
        headers = await _bearer_headers(provider)
        try:
            resp = await http.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Vertex AI request failed: {e}")

    if resp.is_error:
        logger.error(f"Vertex AI submit error {resp.status_code}: {resp.text[:500]}")
        raise ProviderError(
            f"Vertex AI API error ({resp.status_code})",
            detail=error_detail(resp),
        )

    name = json_body(resp, "Vertex AI").get("name")
    if not name:
        raise ProviderError("Vertex AI returned no operation name", detail=resp.text)

    logger.info(f"Veo operation submitted: {name}")
    return name


async def fetch_operation(
    operation_name: str,
    token_provider: Optional[GoogleTokenProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
    project_id: Optional[str] = None,
) -> dict:
    """One poll of a long-running operation."""
    provider = token_provider or get_token_provider()
    project = _resolve_project(provider, project_id)
    url = f"{model_endpoint(project)}:fetchPredictOperation"

    async with use_client(client, HTTP_TIMEOUT) as http:
        headers = await _bearer_headers(provider)
        try:
            resp = await http.post(url, headers=headers, json={"operationName": operation_name})
        except httpx.HTTPError as e:
            raise ProviderError(f"Vertex AI status check failed: {e}")

    if resp.is_error:
        logger.error(f"Vertex AI poll error {resp.status_code}: {resp.text[:500]}")
        raise ProviderError(
            f"Failed to check operation status ({resp.status_code})",
            detail=error_detail(resp),
        )
    return json_body(resp, "Vertex AI")


async def generate_video(
    image_url: str,
    prompt: str,
    token_provider: Optional[GoogleTokenProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
    project_id: Optional[str] = None,
    poll_interval: float = POLL_INTERVAL,
    max_polls: int = MAX_POLL_ATTEMPTS,
    on_submitted: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Submit and wait for a Veo video.

    Returns the video location as an https URL (gs:// URIs are rewritten
    to storage.googleapis.com, which still needs the bearer token to read).
    on_submitted is called with the operation name right after submission.
    """
    provider = token_provider or get_token_provider()

    async with use_client(client, HTTP_TIMEOUT) as http:
        name = await submit_operation(
            prompt,
            image_url=image_url,
            token_provider=provider,
            client=http,
            project_id=project_id,
        )
        if on_submitted:
            on_submitted(name)
        job = GenerationJob(
            provider=Provider.VERTEX_VEO,
            external_id=name,
            status=JobStatus.PROCESSING.value,
        )

        for attempt in range(max_polls):
            await asyncio.sleep(poll_interval)
            operation = await fetch_operation(name, provider, http, project_id)
            job.poll_count = attempt + 1
            metrics.record_poll(Provider.VERTEX_VEO.value)
            logger.info(f"Veo poll #{job.poll_count}/{max_polls}: done={bool(operation.get('done'))}")

            if operation.get("done"):
                job.status = JobStatus.DONE.value
                job.result_locator = gs_to_https(resolve_video_uri(operation))
                return job.result_locator

    raise ProviderTimeoutError(
        "Video generation timed out",
        detail=f"Operation {name} not done after {max_polls} polls ({max_polls * poll_interval:.0f}s)",
    )
