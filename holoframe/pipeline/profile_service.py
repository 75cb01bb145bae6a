"""
Session auth and credit balance.

The API trusts Supabase Auth for identity: the caller's session JWT arrives
as `Authorization: Bearer <jwt>` and is resolved with auth.get_user().
Credits live in profiles.credit.
"""

import os
import logging
from typing import Optional

from ..db import get_supabase
from ..errors import AuthError, NotFoundError
from .models import UserProfile

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

CREDIT_COST = int(os.getenv("CREDIT_COST", "10"))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(authorization: Optional[str], sb=None) -> str:
    """Resolve the session token to a user id. Raises AuthError (401)."""
    token = bearer_token(authorization)
    if not token:
        raise AuthError("Unauthorized")

    sb = sb or get_supabase()
    try:
        resp = sb.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Session lookup failed: {e}")
        raise AuthError("Unauthorized", detail=str(e))

    user = getattr(resp, "user", None)
    if not user:
        raise AuthError("Unauthorized")
    return user.id


def optional_user_id(authorization: Optional[str], sb=None) -> Optional[str]:
    """Like authenticate(), but anonymous callers get None."""
    if not bearer_token(authorization):
        return None
    try:
        return authenticate(authorization, sb)
    except AuthError:
        logger.info("Invalid session token on optional-auth route; treating as anonymous")
        return None


def load_profile(user_id: str, sb=None) -> UserProfile:
    sb = sb or get_supabase()
    result = sb.table("profiles").select("id, nickname, credit").eq("id", user_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Profile not found")
    row = result.data[0]
    return UserProfile(id=row["id"], nickname=row.get("nickname"), credit=row.get("credit") or 0)


def deduct_credit(user_id: str, current_credit: int, cost: int = CREDIT_COST, sb=None) -> int:
    """
    Charge `cost` credits after a successful generation.

    The update only applies while profiles.credit still holds the value we
    read, so a concurrent charge is never silently overwritten. A failed or
    unmatched update is logged at ERROR and does not fail the request: the
    video already exists and has been delivered.

    Returns the new balance. When the update matched no row the stored
    balance is re-read, since another request changed it in between.
    """
    new_credit = current_credit - cost
    sb = sb or get_supabase()
    try:
        result = (
            sb.table("profiles")
            .update({"credit": new_credit})
            .eq("id", user_id)
            .eq("credit", current_credit)
            .execute()
        )
    except Exception as e:
        logger.error(
            f"Credit deduction failed for user {user_id} "
            f"({current_credit} → {new_credit}): {e}",
            exc_info=True,
        )
        return new_credit

    if not result.data:
        logger.error(
            f"Credit deduction matched no row for user {user_id}: "
            f"balance changed since it was read as {current_credit}"
        )
        return _stored_credit(user_id, new_credit, sb)

    logger.info(f"Credit deducted for user {user_id}: {current_credit} → {new_credit}")
    return new_credit


def _stored_credit(user_id: str, fallback: int, sb) -> int:
    # Report what the profile actually holds after a lost compare-and-set
    try:
        return load_profile(user_id, sb).credit
    except Exception as e:
        logger.error(f"Could not re-read credit for user {user_id}: {e}")
        return fallback
