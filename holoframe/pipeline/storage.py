"""
Supabase Storage helpers for the pipeline.

Every durable asset lives in one bucket:
  3D_hologram_images/user_images/{n}.{ext}
  3D_hologram_images/removed_backgrounds/{n}.png
  3D_hologram_images/veo_video/{userId}_{n}.mp4   (anonymous_{ms}.mp4 without a user)

Provider outputs are downloaded and re-uploaded here so that the URLs we
hand out never expire. Uploads never overwrite: two requests racing for
the same name get one success and one StorageError.
"""

import os
import re
import time
import asyncio
import logging
from typing import Iterable, List, Optional

import httpx
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage as gcs

from ..db import get_supabase
from ..errors import StorageError
from ..google_auth import GoogleTokenProvider, get_token_provider
from .http import use_client
from .models import StoredAsset, VEO_VIDEO

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "3D_hologram_images")

LIST_OPTIONS = {"limit": 1000, "offset": 0}
CACHE_CONTROL = "3600"
DOWNLOAD_TIMEOUT = 120

# Folders whose files are named after the owning user
OWNER_PARTITIONED = {VEO_VIDEO}

# Supabase creates this marker in empty folders
PLACEHOLDER = ".emptyFolderPlaceholder"


# ═════════════════════════════════════════════════════════════════════════════
# Downloads
# ═════════════════════════════════════════════════════════════════════════════

def _download_gcs(uri: str, provider: GoogleTokenProvider) -> bytes:
    bucket_name, _, blob_name = uri[len("gs://"):].partition("/")
    if not bucket_name or not blob_name:
        raise StorageError(f"Malformed gs:// URI: {uri}")
    client = gcs.Client(project=provider.source.project_id, credentials=provider.credentials)
    return client.bucket(bucket_name).blob(blob_name).download_as_bytes()


async def fetch_bytes(
    source_uri: str,
    access_token: Optional[str] = None,
    token_provider: Optional[GoogleTokenProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Download a provider output.

      gs://bucket/object               → Cloud Storage client, service credentials
      https://storage.googleapis.com/… → GET with the bearer token when given
      anything else                    → plain GET
    """
    if source_uri.startswith("gs://"):
        provider = token_provider or get_token_provider()
        try:
            data = await asyncio.to_thread(_download_gcs, source_uri, provider)
        except (GoogleAPIError, GoogleAuthError) as e:
            logger.error(f"GCS download failed for {source_uri}: {e}")
            raise StorageError(f"Failed to download video from Google Cloud Storage: {e}")
        logger.info(f"Downloaded {len(data)} bytes from {source_uri}")
        return data

    headers = {}
    if access_token and source_uri.startswith("https://storage.googleapis.com/"):
        headers["Authorization"] = f"Bearer {access_token}"

    async with use_client(client, DOWNLOAD_TIMEOUT) as http:
        try:
            resp = await http.get(source_uri, headers=headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download {source_uri}: {e}")

    if resp.is_error:
        logger.error(f"Download failed {resp.status_code} for {source_uri}")
        raise StorageError(
            f"Failed to download generated asset ({resp.status_code})",
            detail=resp.text[:500],
        )

    logger.info(f"Downloaded {len(resp.content)} bytes from {source_uri[:80]}")
    return resp.content


# ═════════════════════════════════════════════════════════════════════════════
# Naming
# ═════════════════════════════════════════════════════════════════════════════

def _stem(name: str) -> str:
    return name.rsplit(".", 1)[0] if "." in name else name


def next_numeric_name(names: Iterable[str], ext: str) -> str:
    """{max+1}.{ext} over names whose stem is all digits; 1 when there are none."""
    numbers = [int(_stem(n)) for n in names if _stem(n).isdigit()]
    return f"{max(numbers, default=0) + 1}.{ext}"


def next_owner_name(names: Iterable[str], owner: str, ext: str) -> str:
    """{owner}_{max+1}.{ext} over names shaped {owner}_{digits}."""
    pattern = re.compile(rf"^{re.escape(owner)}_(\d+)$")
    numbers = []
    for name in names:
        match = pattern.match(_stem(name))
        if match:
            numbers.append(int(match.group(1)))
    return f"{owner}_{max(numbers, default=0) + 1}.{ext}"


def anonymous_name(ext: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"anonymous_{now_ms}.{ext}"


def choose_name(folder: str, names: Iterable[str], ext: str, owner_key: Optional[str] = None) -> str:
    if folder in OWNER_PARTITIONED:
        if owner_key:
            return next_owner_name(names, owner_key, ext)
        return anonymous_name(ext)
    return next_numeric_name(names, ext)


# ═════════════════════════════════════════════════════════════════════════════
# Bucket operations
# ═════════════════════════════════════════════════════════════════════════════

def public_url(path: str, sb=None) -> str:
    sb = sb or get_supabase()
    return sb.storage.from_(SUPABASE_BUCKET).get_public_url(path)


def list_folder(folder: str, sb=None) -> List[dict]:
    """Objects in a folder (first 1000), placeholder markers excluded."""
    sb = sb or get_supabase()
    try:
        entries = sb.storage.from_(SUPABASE_BUCKET).list(folder, LIST_OPTIONS)
    except Exception as e:
        logger.error(f"Storage list failed for {folder}/: {e}")
        raise StorageError(f"Failed to list {folder}", detail=str(e))
    return [e for e in (entries or []) if e.get("name") and e["name"] != PLACEHOLDER]


def list_names(folder: str, sb=None) -> List[str]:
    return [e["name"] for e in list_folder(folder, sb)]


def upload_asset(folder: str, file_name: str, data: bytes, content_type: str, sb=None) -> StoredAsset:
    """Upload without overwrite. An existing path raises StorageError."""
    sb = sb or get_supabase()
    path = f"{folder}/{file_name}"
    try:
        sb.storage.from_(SUPABASE_BUCKET).upload(
            path,
            data,
            file_options={
                "content-type": content_type,
                "cache-control": CACHE_CONTROL,
                "upsert": "false",
            },
        )
    except Exception as e:
        logger.error(f"Storage upload failed for {path}: {e}")
        raise StorageError("Failed to upload to storage", detail=str(e))

    url = public_url(path, sb)
    logger.info(f"Uploaded {len(data)} bytes to {SUPABASE_BUCKET}/{path}")
    return StoredAsset(
        bucket=SUPABASE_BUCKET,
        path=path,
        file_name=file_name,
        public_url=url,
        content_type=content_type,
    )


def delete_asset(folder: str, file_name: str, sb=None):
    sb = sb or get_supabase()
    path = f"{folder}/{file_name}"
    try:
        sb.storage.from_(SUPABASE_BUCKET).remove([path])
    except Exception as e:
        logger.error(f"Storage delete failed for {path}: {e}")
        raise StorageError("Failed to delete file", detail=str(e))
    logger.info(f"Deleted {SUPABASE_BUCKET}/{path}")


async def materialize(
    source_uri: str,
    folder: str,
    ext: str,
    content_type: str,
    owner_key: Optional[str] = None,
    access_token: Optional[str] = None,
    token_provider: Optional[GoogleTokenProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
    sb=None,
) -> StoredAsset:
    """Copy a provider output into our bucket under the folder's naming scheme."""
    data = await fetch_bytes(
        source_uri,
        access_token=access_token,
        token_provider=token_provider,
        client=client,
    )
    return store_bytes(data, folder, ext, content_type, owner_key=owner_key, sb=sb)


def store_bytes(
    data: bytes,
    folder: str,
    ext: str,
    content_type: str,
    owner_key: Optional[str] = None,
    sb=None,
) -> StoredAsset:
    sb = sb or get_supabase()
    file_name = choose_name(folder, list_names(folder, sb), ext, owner_key)
    return upload_asset(folder, file_name, data, content_type, sb)
