"""
Hologram records, the public video archive, and the admin file browser.
"""

import logging
from typing import List, Optional

from ..db import get_supabase
from ..errors import HoloFrameError, RequestValidationError
from .models import (
    FOLDERS,
    ArchiveVideo,
    HologramCreateRequest,
    HologramRecord,
    HologramType,
    Platform,
    StorageFile,
    VEO_VIDEO,
)
from .storage import delete_asset, list_folder, public_url

logger = logging.getLogger(__name__)

REQUIRED_HOLOGRAM_FIELDS = ("original_image_url", "video_url", "platform", "hologram_type")


# ═════════════════════════════════════════════════════════════════════════════
# holograms table
# ═════════════════════════════════════════════════════════════════════════════

def list_holograms(sb=None) -> List[HologramRecord]:
    sb = sb or get_supabase()
    try:
        result = sb.table("holograms").select("*").order("created_at", desc=True).execute()
    except Exception as e:
        logger.error(f"Failed to fetch holograms: {e}")
        raise HoloFrameError("Failed to fetch holograms", detail=str(e))
    return [HologramRecord(**row) for row in (result.data or [])]


def create_hologram(req: HologramCreateRequest, user_id: Optional[str] = None, sb=None) -> HologramRecord:
    missing = [f for f in REQUIRED_HOLOGRAM_FIELDS if not getattr(req, f)]
    if missing:
        raise RequestValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        platform = Platform(req.platform)
        hologram_type = HologramType(req.hologram_type)
    except ValueError as e:
        raise RequestValidationError(str(e))

    row = {
        "user_id": user_id,
        "title": req.title,
        "description": req.description,
        "original_image_url": req.original_image_url,
        "background_removed_image_url": req.background_removed_image_url,
        "video_url": req.video_url,
        "platform": platform.value,
        "hologram_type": hologram_type.value,
        "user_prompt": req.user_prompt,
    }

    sb = sb or get_supabase()
    try:
        result = sb.table("holograms").insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to save hologram: {e}")
        raise HoloFrameError("Failed to save hologram", detail=str(e))

    saved = (result.data or [row])[0]
    logger.info(f"Hologram saved: id={saved.get('id')} user={user_id}")
    return HologramRecord(**saved)


# ═════════════════════════════════════════════════════════════════════════════
# Archive (veo_video/ with owner nicknames)
# ═════════════════════════════════════════════════════════════════════════════

def owner_from_file_name(name: str) -> Optional[str]:
    """veo_video files are {userId}_{n}.mp4; anonymous uploads have no owner."""
    if "_" not in name:
        return None
    owner = name.split("_", 1)[0]
    if not owner or owner == "anonymous":
        return None
    return owner


def list_archive(sb=None) -> List[ArchiveVideo]:
    sb = sb or get_supabase()
    entries = [e for e in list_folder(VEO_VIDEO, sb) if e["name"].endswith(".mp4")]

    owner_ids = sorted({o for o in (owner_from_file_name(e["name"]) for e in entries) if o})
    nicknames = {}
    if owner_ids:
        try:
            result = sb.table("profiles").select("id, nickname").in_("id", owner_ids).execute()
            nicknames = {row["id"]: row.get("nickname") for row in (result.data or [])}
        except Exception as e:
            # Archive still renders without nicknames
            logger.warning(f"Nickname lookup failed: {e}")

    videos = []
    for entry in entries:
        owner = owner_from_file_name(entry["name"])
        videos.append(ArchiveVideo(
            name=entry["name"],
            id=entry.get("id"),
            created_at=entry.get("created_at"),
            publicUrl=public_url(f"{VEO_VIDEO}/{entry['name']}", sb),
            userId=owner,
            nickname=(nicknames.get(owner) or owner) if owner else None,
        ))
    videos.sort(key=lambda v: v.created_at or "", reverse=True)
    return videos


# ═════════════════════════════════════════════════════════════════════════════
# Admin file browser
# ═════════════════════════════════════════════════════════════════════════════

def _check_folder(folder: str):
    if folder not in FOLDERS:
        raise RequestValidationError(f"Unknown folder: {folder}. Expected one of {', '.join(FOLDERS)}")


def list_files(folder: Optional[str] = None, sb=None) -> List[StorageFile]:
    sb = sb or get_supabase()
    folders = FOLDERS
    if folder:
        _check_folder(folder)
        folders = [folder]

    files = []
    for name in folders:
        for entry in list_folder(name, sb):
            metadata = entry.get("metadata") or {}
            files.append(StorageFile(
                name=entry["name"],
                id=entry.get("id"),
                folder=name,
                created_at=entry.get("created_at"),
                updated_at=entry.get("updated_at"),
                size=metadata.get("size"),
                publicUrl=public_url(f"{name}/{entry['name']}", sb),
            ))
    return files


def delete_file(folder: str, name: str, sb=None):
    _check_folder(folder)
    if "/" in name or name in ("", ".", ".."):
        raise RequestValidationError("Invalid file name")
    delete_asset(folder, name, sb)
