"""
Hologram Pipeline

  Images: background removal (Replicate) and uploads into Supabase Storage
  Video : credit-gated generation via Replicate or Vertex AI Veo, copied
           into Supabase Storage
  Records: saved holograms, the public archive, and the admin file browser
"""

from .orchestrator import HologramService
from .routes import admin_router, api_router
from .models import OrchestratorState, Platform

__all__ = [
    "HologramService",
    "api_router",
    "admin_router",
    "OrchestratorState",
    "Platform",
]
