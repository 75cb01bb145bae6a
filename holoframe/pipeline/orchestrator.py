"""
HologramService: request-level orchestration for the hologram pipeline.

  remove_background:  Replicate rembg → removed_backgrounds/{n}.png
  upload_image:       multipart bytes → user_images/{n}.{ext}
  create_video:       session → credit check → video (Replicate or Veo)
                      → veo_video/{userId}_{n}.mp4 → credit deduction
  start_veo_operation / check_operation:
                      submit a Veo job and poll it one request at a time

Every call runs to completion inside its HTTP request; nothing is queued.
"""

import time
import asyncio
import uuid
import logging
import mimetypes
from typing import Optional

import httpx

from ..db import get_supabase
from ..errors import InsufficientCreditError, ProviderError, RequestValidationError, StorageError
from ..google_auth import GoogleTokenProvider, get_token_provider
from .. import metrics
from . import replicate, veo
from .models import (
    CreateVideoRequest,
    CreateVideoResponse,
    OrchestratorState,
    Platform,
    Provider,
    REMOVED_BACKGROUNDS,
    RemoveBackgroundResponse,
    StoredAsset,
    UploadImageResponse,
    USER_IMAGES,
    VEO_VIDEO,
    VertexVeoRequest,
)
from .profile_service import CREDIT_COST, authenticate, deduct_credit, load_profile
from .storage import materialize, store_bytes

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "gif"}


class HologramService:
    """
    Usage:
        service = HologramService()

        result = await service.remove_background(image_url)
        result = await service.create_video(authorization, request)

    Collaborators (Supabase client, HTTP client, Google token provider) are
    resolved lazily so the service can be built before configuration is
    loaded; tests pass fakes in.
    """

    def __init__(
        self,
        supabase=None,
        client: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[GoogleTokenProvider] = None,
        credit_cost: Optional[int] = None,
        replicate_poll_interval: float = replicate.POLL_INTERVAL,
        veo_poll_interval: float = veo.POLL_INTERVAL,
    ):
        self._supabase = supabase
        self._client = client
        self._token_provider = token_provider
        self.credit_cost = CREDIT_COST if credit_cost is None else credit_cost
        self.replicate_poll_interval = replicate_poll_interval
        self.veo_poll_interval = veo_poll_interval

    @property
    def sb(self):
        return self._supabase or get_supabase()

    @property
    def tokens(self) -> GoogleTokenProvider:
        return self._token_provider or get_token_provider()

    def _advance(self, flow_id: str, state: OrchestratorState, detail: str = ""):
        logger.info(f"[{flow_id}] → {state.value}{f' ({detail})' if detail else ''}")

    # ── Background removal ───────────────────────────────────────────────

    async def remove_background(self, image_url: Optional[str]) -> RemoveBackgroundResponse:
        if not image_url:
            raise RequestValidationError("imageUrl is required")

        result_url = await replicate.remove_background(
            image_url,
            client=self._client,
            poll_interval=self.replicate_poll_interval,
        )
        asset = await materialize(
            result_url, REMOVED_BACKGROUNDS, "png", "image/png",
            client=self._client, sb=self.sb,
        )
        return RemoveBackgroundResponse(
            imageUrl=asset.public_url,
            fileName=asset.file_name,
            filePath=asset.path,
        )

    # ── Image upload ─────────────────────────────────────────────────────

    def upload_image(
        self,
        data: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> UploadImageResponse:
        if not data:
            raise RequestValidationError("No file uploaded")
        if not content_type or not content_type.startswith("image/"):
            raise RequestValidationError("Only image files can be uploaded")

        ext = (filename or "").rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            guessed = mimetypes.guess_extension(content_type) or ".png"
            ext = guessed.lstrip(".")
            if ext == "jpe":
                ext = "jpg"

        asset = store_bytes(data, USER_IMAGES, ext, content_type, sb=self.sb)
        return UploadImageResponse(
            imageUrl=asset.public_url,
            fileName=asset.file_name,
            filePath=asset.path,
        )

    # ── Credit-gated video creation ──────────────────────────────────────

    async def create_video(
        self,
        authorization: Optional[str],
        request: CreateVideoRequest,
    ) -> CreateVideoResponse:
        """
        Blocking create: returns once the video is stored and paid for.

        Insufficient credit is rejected before any provider or storage
        call. The credit is deducted last, only after the asset exists.
        """
        flow_id = uuid.uuid4().hex[:8]
        self._advance(flow_id, OrchestratorState.UNAUTHENTICATED)

        if not request.imageUrl or not request.prompt:
            raise RequestValidationError("imageUrl and prompt are required")
        try:
            platform = Platform(request.platform or Platform.REPLICATE.value)
        except ValueError:
            raise RequestValidationError(
                f"Invalid platform: {request.platform}. Use 'replicate' or 'veo'"
            )

        user_id = authenticate(authorization, self.sb)
        self._advance(flow_id, OrchestratorState.AUTHENTICATED, f"user={user_id}")

        profile = load_profile(user_id, self.sb)
        if profile.credit < self.credit_cost:
            self._advance(flow_id, OrchestratorState.REJECTED, f"credit={profile.credit}")
            metrics.record_rejection()
            raise InsufficientCreditError(
                f"Insufficient credit. {self.credit_cost} credits required, "
                f"current balance: {profile.credit}",
                detail={"required": self.credit_cost, "current": profile.credit},
            )
        self._advance(flow_id, OrchestratorState.BALANCE_CHECKED, f"credit={profile.credit}")

        asset = await self._generate_and_store(flow_id, platform, request.imageUrl, request.prompt, user_id)

        remaining = deduct_credit(user_id, profile.credit, self.credit_cost, self.sb)
        self._advance(flow_id, OrchestratorState.CREDIT_DEDUCTED, f"remaining={remaining}")

        response = CreateVideoResponse(
            videoUrl=asset.public_url,
            fileName=asset.file_name,
            filePath=asset.path,
            platform=platform,
            remainingCredit=remaining,
        )
        self._advance(flow_id, OrchestratorState.RESPONDED)
        return response

    async def _generate_and_store(
        self,
        flow_id: str,
        platform: Platform,
        image_url: str,
        prompt: str,
        user_id: str,
    ) -> StoredAsset:
        started = time.time()

        def submitted(external_id: str):
            self._advance(flow_id, OrchestratorState.VIDEO_SUBMITTED, f"{platform.value} {external_id}")
            self._advance(flow_id, OrchestratorState.VIDEO_POLLING)

        access_token = None
        if platform == Platform.VEO:
            provider = self.tokens
            video_uri = await veo.generate_video(
                image_url,
                prompt,
                token_provider=provider,
                client=self._client,
                poll_interval=self.veo_poll_interval,
                on_submitted=submitted,
            )
            # storage.googleapis.com objects are private to the service account
            access_token = await asyncio.to_thread(provider.get_access_token)
        else:
            video_uri = await replicate.generate_video(
                image_url,
                prompt,
                client=self._client,
                poll_interval=self.replicate_poll_interval,
                on_submitted=submitted,
            )

        metrics.record_generation(platform.value, time.time() - started)
        self._advance(flow_id, OrchestratorState.VIDEO_READY, video_uri)

        self._advance(flow_id, OrchestratorState.ASSET_MATERIALIZING)
        asset = await materialize(
            video_uri, VEO_VIDEO, "mp4", "video/mp4",
            owner_key=user_id,
            access_token=access_token,
            token_provider=self._token_provider,
            client=self._client,
            sb=self.sb,
        )
        self._advance(flow_id, OrchestratorState.ASSET_READY, asset.path)
        return asset

    # ── Veo submit / check (one poll per request) ────────────────────────

    async def start_veo_operation(self, request: VertexVeoRequest) -> dict:
        if not request.prompt:
            raise RequestValidationError("prompt is required")
        if not request.imageUrl and not request.imageBase64:
            raise RequestValidationError("imageUrl or imageBase64 is required")

        name = await veo.submit_operation(
            request.prompt,
            image_url=request.imageUrl,
            image_base64=request.imageBase64,
            aspect_ratio=request.aspectRatio,
            token_provider=self.tokens,
            client=self._client,
        )
        return {"success": True, "operationName": name}

    async def check_operation(
        self,
        operation_name: Optional[str],
        user_id: Optional[str] = None,
    ) -> dict:
        """
        One fetchPredictOperation poll. On completion the video is copied
        into veo_video/ and its public URL returned.

        Provider and storage failures on a finished operation come back as a
        {done: true, status: "error"} body so the polling client can stop; the
        route sends it with status 500.
        """
        if not operation_name:
            raise RequestValidationError("operationName is required")

        provider = self.tokens
        operation = await veo.fetch_operation(operation_name, provider, self._client)
        metrics.record_poll(Provider.VERTEX_VEO.value)

        if not operation.get("done"):
            return {
                "done": False,
                "status": "processing",
                "message": "Video generation is in progress",
            }

        try:
            video_uri = veo.resolve_video_uri(operation)
        except ProviderError as e:
            return {
                "done": True,
                "status": "error",
                "error": e.message,
                "detail": e.detail,
            }

        # gs:// goes through the Cloud Storage client; https needs the bearer
        access_token = None
        if video_uri.startswith("https://storage.googleapis.com/"):
            access_token = await asyncio.to_thread(provider.get_access_token)

        try:
            asset = await materialize(
                video_uri, VEO_VIDEO, "mp4", "video/mp4",
                owner_key=user_id,
                access_token=access_token,
                token_provider=provider,
                client=self._client,
                sb=self.sb,
            )
        except StorageError as e:
            return {
                "done": True,
                "status": "error",
                "error": e.message,
                "detail": e.detail,
            }
        return {
            "done": True,
            "status": "completed",
            "videoUrl": asset.public_url,
            "message": "Video generated successfully",
        }
