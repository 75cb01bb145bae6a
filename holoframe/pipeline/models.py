"""
Pydantic models and enums for the hologram pipeline.
"""

import time
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


# ── Storage layout ───────────────────────────────────────────────────────────

USER_IMAGES = "user_images"
REMOVED_BACKGROUNDS = "removed_backgrounds"
VEO_VIDEO = "veo_video"

FOLDERS = [USER_IMAGES, REMOVED_BACKGROUNDS, VEO_VIDEO]


# ── Enums ────────────────────────────────────────────────────────────────────

class Platform(str, Enum):
    REPLICATE = "replicate"
    VEO = "veo"


class Provider(str, Enum):
    REPLICATE = "replicate"
    VERTEX_VEO = "vertexVeo"


class HologramType(str, Enum):
    ONE_SIDE = "1side"
    FOUR_SIDES = "4sides"


class JobStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    DONE = "done"


PENDING_STATUSES = {JobStatus.STARTING.value, JobStatus.PROCESSING.value}


class OrchestratorState(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED = "Authenticated"
    BALANCE_CHECKED = "BalanceChecked"
    REJECTED = "Rejected"
    VIDEO_SUBMITTED = "VideoSubmitted"
    VIDEO_POLLING = "VideoPolling"
    VIDEO_READY = "VideoReady"
    ASSET_MATERIALIZING = "AssetMaterializing"
    ASSET_READY = "AssetReady"
    CREDIT_DEDUCTED = "CreditDeducted"
    RESPONDED = "Responded"


class VideoResultKind(str, Enum):
    STORAGE_URI_PREDICTION = "storage_uri_prediction"  # response.predictions[0].storageUri
    GCS_URI_VIDEO = "gcs_uri_video"                    # response.videos[0].gcsUri
    GENERATED_VIDEO = "generated_video"                # generateVideoResponse.generatedVideos[0].video
    INLINE_BYTES = "inline_bytes"
    UNRECOGNIZED = "unrecognized"


# ── Transient job state ──────────────────────────────────────────────────────

class GenerationJob(BaseModel):
    """Lives only for the duration of one request; never persisted."""
    provider: Provider
    external_id: str
    status: str = JobStatus.STARTING.value
    result_locator: Optional[str] = None
    poll_count: int = 0
    started_at: float = Field(default_factory=time.time)


class VideoResult(BaseModel):
    kind: VideoResultKind
    uri: Optional[str] = None


class StoredAsset(BaseModel):
    bucket: str
    path: str
    file_name: str
    public_url: str
    content_type: str


# ── Persisted rows ───────────────────────────────────────────────────────────

class UserProfile(BaseModel):
    id: str
    nickname: Optional[str] = None
    credit: int = 0


class HologramRecord(BaseModel):
    id: Optional[Any] = None
    user_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    original_image_url: str
    background_removed_image_url: Optional[str] = None
    video_url: str
    platform: Platform
    hologram_type: HologramType
    user_prompt: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ── API Request Models ───────────────────────────────────────────────────────
# Required fields are Optional here so that a missing field produces the
# API's own 400 response instead of FastAPI's 422.

class RemoveBackgroundRequest(BaseModel):
    imageUrl: Optional[str] = None


class CreateVideoRequest(BaseModel):
    imageUrl: Optional[str] = None
    prompt: Optional[str] = None
    platform: Optional[str] = Platform.REPLICATE.value


class VertexVeoRequest(BaseModel):
    prompt: Optional[str] = None
    imageUrl: Optional[str] = None
    imageBase64: Optional[str] = None
    aspectRatio: Optional[str] = None


class GeminiRequest(BaseModel):
    prompt: Optional[str] = None


class HologramCreateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    original_image_url: Optional[str] = None
    background_removed_image_url: Optional[str] = None
    video_url: Optional[str] = None
    platform: Optional[str] = None
    hologram_type: Optional[str] = None
    user_prompt: Optional[str] = None


# ── API Response Models ──────────────────────────────────────────────────────

class RemoveBackgroundResponse(BaseModel):
    success: bool = True
    imageUrl: str
    fileName: str
    filePath: str


class UploadImageResponse(RemoveBackgroundResponse):
    pass


class CreateVideoResponse(BaseModel):
    success: bool = True
    videoUrl: str
    fileName: str
    filePath: str
    platform: Platform
    remainingCredit: int


class StorageFile(BaseModel):
    name: str
    id: Optional[str] = None
    folder: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    size: Optional[int] = None
    publicUrl: str


class ArchiveVideo(BaseModel):
    name: str
    id: Optional[str] = None
    created_at: Optional[str] = None
    publicUrl: str
    userId: Optional[str] = None
    nickname: Optional[str] = None
