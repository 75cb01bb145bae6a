"""
FastAPI routes for the hologram pipeline.

API Endpoints:
  POST /api/remove-background       : Replicate rembg → removed_backgrounds/
  POST /api/upload-image            : multipart image → user_images/
  POST /api/create-hologram-video   : credit-gated video (Replicate or Veo)
  POST /api/vertex-veo              : submit a Veo operation
  GET  /api/check-hologram-operation: poll a Veo operation once
  GET  /api/debug-auth              : Google credential diagnostics
  POST /api/gemini                  : Gemini text generation
  GET  /api/holograms               : list saved holograms
  POST /api/holograms               : save a hologram
  GET  /api/archive                 : public video archive with nicknames
  GET  /api/prompts/hologram        : build the hologram prompt

Admin Endpoints (X-Admin-Password):
  GET    /admin/files               : list bucket files
  DELETE /admin/files/{folder}/{name}
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, Query, UploadFile
from fastapi.responses import JSONResponse

from .. import gemini, metrics
from ..google_auth import describe_auth, env_check
from . import hologram_service
from .models import (
    CreateVideoRequest,
    CreateVideoResponse,
    GeminiRequest,
    HologramCreateRequest,
    HologramType,
    RemoveBackgroundRequest,
    RemoveBackgroundResponse,
    UploadImageResponse,
    VertexVeoRequest,
)
from .orchestrator import HologramService
from .profile_service import optional_user_id
from .prompts import create_hologram_prompt

logger = logging.getLogger(__name__)


# Singleton service instance
_service = HologramService()


def get_service() -> HologramService:
    return _service


# ═════════════════════════════════════════════════════════════════════════════
# API Router
# ═════════════════════════════════════════════════════════════════════════════

api_router = APIRouter(prefix="/api", tags=["hologram"])


# ── Images ───────────────────────────────────────────────────────────────────

@api_router.post("/remove-background", response_model=RemoveBackgroundResponse)
async def remove_background(
    request: RemoveBackgroundRequest,
    service: HologramService = Depends(get_service),
):
    """Strip the background from an image and store the PNG."""
    metrics.inc_counter("requests.remove_background")
    return await service.remove_background(request.imageUrl)


@api_router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    service: HologramService = Depends(get_service),
):
    metrics.inc_counter("requests.upload_image")
    data = await file.read() if file is not None else b""
    return service.upload_image(
        data,
        file.filename if file is not None else None,
        file.content_type if file is not None else None,
    )


# ── Video ────────────────────────────────────────────────────────────────────

@api_router.post("/create-hologram-video", response_model=CreateVideoResponse)
async def create_hologram_video(
    request: CreateVideoRequest,
    authorization: Optional[str] = Header(None),
    service: HologramService = Depends(get_service),
):
    """
    Generate a hologram video and charge the caller.

    Errors:
      - 400: Missing fields, invalid platform, or insufficient credit
      - 401: Missing or invalid session token
      - 404: No profile for the user
      - 500: Provider or storage failure (timeouts say "timed out")
    """
    metrics.inc_counter("requests.create_hologram_video")
    return await service.create_video(authorization, request)


@api_router.post("/vertex-veo")
async def vertex_veo(
    request: VertexVeoRequest,
    service: HologramService = Depends(get_service),
):
    """Submit a Veo generation and return the operation name for polling."""
    metrics.inc_counter("requests.vertex_veo")
    return await service.start_veo_operation(request)


@api_router.get("/check-hologram-operation")
async def check_hologram_operation(
    operationName: Optional[str] = Query(None),
    userId: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
    service: HologramService = Depends(get_service),
):
    """Poll a Veo operation once; copies the video to storage when done."""
    metrics.inc_counter("requests.check_operation")
    result = await service.check_operation(operationName, userId)
    if result.get("status") == "error":
        logger.error(f"Operation {operationName} failed: {result.get('error')}")
        return JSONResponse(status_code=500, content=result)
    if platform:
        result["platform"] = platform
    return result


# ── Diagnostics ──────────────────────────────────────────────────────────────

@api_router.api_route("/debug-auth", methods=["GET", "POST"])
def debug_auth():
    """Run one Google token exchange and report which credentials are set."""
    result = describe_auth()
    body = {
        **result,
        "envCheck": env_check(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if result["success"] else 500, content=body)


# ── Gemini ───────────────────────────────────────────────────────────────────

@api_router.post("/gemini")
async def gemini_generate(request: GeminiRequest):
    metrics.inc_counter("requests.gemini")
    text = await gemini.generate_text(request.prompt)
    return {"success": True, "text": text}


# ── Holograms & archive ──────────────────────────────────────────────────────

@api_router.get("/holograms")
def list_holograms(service: HologramService = Depends(get_service)):
    holograms = hologram_service.list_holograms(service.sb)
    return {"success": True, "holograms": [h.model_dump() for h in holograms]}


@api_router.post("/holograms")
def create_hologram(
    request: HologramCreateRequest,
    authorization: Optional[str] = Header(None),
    service: HologramService = Depends(get_service),
):
    user_id = optional_user_id(authorization, service.sb)
    record = hologram_service.create_hologram(request, user_id, service.sb)
    return {"success": True, "hologram": record.model_dump()}


@api_router.get("/archive")
def archive(service: HologramService = Depends(get_service)):
    videos = hologram_service.list_archive(service.sb)
    return {"success": True, "videos": [v.model_dump() for v in videos]}


@api_router.get("/prompts/hologram")
def hologram_prompt(
    userPrompt: Optional[str] = Query(None),
    hologramType: HologramType = Query(HologramType.ONE_SIDE),
):
    return {"prompt": create_hologram_prompt(userPrompt, hologramType.value)}


# ═════════════════════════════════════════════════════════════════════════════
# Admin Router: guarded by AdminAuthMiddleware
# ═════════════════════════════════════════════════════════════════════════════

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.get("/files")
def list_files(
    folder: Optional[str] = Query(None),
    service: HologramService = Depends(get_service),
):
    files = hologram_service.list_files(folder, service.sb)
    return {"success": True, "files": [f.model_dump() for f in files]}


@admin_router.delete("/files/{folder}/{name}")
def delete_file(
    folder: str,
    name: str,
    service: HologramService = Depends(get_service),
):
    hologram_service.delete_file(folder, name, service.sb)
    return {"success": True, "deleted": f"{folder}/{name}"}
