"""
Google Cloud bearer tokens for Vertex AI and Cloud Storage.

Three credential sources are supported, chosen once from the environment in
strict priority order (the first source whose inputs are all present wins):

  1. ServiceAccountKey         : GOOGLE_APPLICATION_CREDENTIALS_BASE64
  2. ServiceAccountFields      : GOOGLE_PRIVATE_KEY + GOOGLE_CLIENT_EMAIL
  3. WorkloadIdentityFederation: GOOGLE_WIF_AUDIENCE + GOOGLE_SERVICE_ACCOUNT_EMAIL
                                  + VERCEL_OIDC_TOKEN

Selecting a source never touches the network; the token exchange happens on
the first get_access_token() call. Once a source is selected, its failures
are raised as-is; the next source is never tried.
"""

import os
import json
import base64
import binascii
import logging
import threading
from typing import Mapping, Optional

import google.auth.transport.requests
from google.auth import identity_pool
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from .errors import AuthError, ConfigurationError, HoloFrameError

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
STS_TOKEN_URL = "https://sts.googleapis.com/v1/token"
JWT_SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:jwt"
IMPERSONATION_URL = (
    "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/"
    "{email}:generateAccessToken"
)

ENV_KEYS = (
    "GOOGLE_PROJECT_ID",
    "GOOGLE_APPLICATION_CREDENTIALS_BASE64",
    "GOOGLE_PRIVATE_KEY",
    "GOOGLE_CLIENT_EMAIL",
    "GOOGLE_WIF_AUDIENCE",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "VERCEL_OIDC_TOKEN",
)


# ═════════════════════════════════════════════════════════════════════════════
# Credential sources
# ═════════════════════════════════════════════════════════════════════════════

class CredentialSource:
    """Base for the three ways of obtaining Google credentials."""

    auth_method = "unknown"

    def __init__(self, project_id: Optional[str] = None):
        self.project_id = project_id

    def build_credentials(self):
        raise NotImplementedError


class ServiceAccountKey(CredentialSource):
    auth_method = "Service Account JSON (Base64)"

    def __init__(self, encoded_key: str, project_id: Optional[str] = None):
        super().__init__(project_id)
        self.encoded_key = encoded_key

    def _decode(self) -> dict:
        try:
            return json.loads(base64.b64decode(self.encoded_key).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise AuthError(
                f"GOOGLE_APPLICATION_CREDENTIALS_BASE64 could not be parsed: {e}. "
                "It must be a base64-encoded service account JSON key.",
                status_code=500,
            )

    def build_credentials(self):
        info = self._decode()
        if not self.project_id:
            self.project_id = info.get("project_id")
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        except (ValueError, KeyError) as e:
            raise AuthError(f"Service account key is invalid: {e}", status_code=500)


class ServiceAccountFields(CredentialSource):
    auth_method = "Service Account (individual fields)"

    def __init__(self, private_key: str, client_email: str, project_id: Optional[str] = None):
        super().__init__(project_id)
        # Keys pasted into env vars arrive with literal "\n" sequences
        self.private_key = private_key.replace("\\n", "\n")
        self.client_email = client_email

    def build_credentials(self):
        info = {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": GOOGLE_TOKEN_URI,
        }
        if self.project_id:
            info["project_id"] = self.project_id
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        except (ValueError, KeyError) as e:
            raise AuthError(f"GOOGLE_PRIVATE_KEY is not a valid private key: {e}", status_code=500)


class _StaticSubjectTokenSupplier(identity_pool.SubjectTokenSupplier):
    """Hands the externally issued OIDC token to the STS exchange."""

    def __init__(self, token: str):
        self._token = token

    def get_subject_token(self, context, request):
        return self._token


class WorkloadIdentityFederation(CredentialSource):
    auth_method = "WIF (Workload Identity Federation)"

    def __init__(
        self,
        audience: str,
        service_account_email: str,
        oidc_token: str,
        project_id: Optional[str] = None,
    ):
        super().__init__(project_id)
        self.audience = audience
        self.service_account_email = service_account_email
        self.oidc_token = oidc_token

    def build_credentials(self):
        return identity_pool.Credentials(
            audience=self.audience,
            subject_token_type=JWT_SUBJECT_TOKEN_TYPE,
            token_url=STS_TOKEN_URL,
            subject_token_supplier=_StaticSubjectTokenSupplier(self.oidc_token),
            service_account_impersonation_url=IMPERSONATION_URL.format(
                email=self.service_account_email
            ),
            scopes=SCOPES,
        )


def select_credential_source(env: Optional[Mapping[str, str]] = None) -> CredentialSource:
    """Pick the first viable credential source from the environment."""
    env = os.environ if env is None else env
    project_id = env.get("GOOGLE_PROJECT_ID") or None

    encoded_key = env.get("GOOGLE_APPLICATION_CREDENTIALS_BASE64")
    if encoded_key:
        logger.info("Google auth: using base64 service account key")
        return ServiceAccountKey(encoded_key, project_id)

    private_key = env.get("GOOGLE_PRIVATE_KEY")
    client_email = env.get("GOOGLE_CLIENT_EMAIL")
    if private_key and client_email:
        logger.info("Google auth: using service account fields")
        return ServiceAccountFields(private_key, client_email, project_id)

    audience = env.get("GOOGLE_WIF_AUDIENCE")
    sa_email = env.get("GOOGLE_SERVICE_ACCOUNT_EMAIL")
    oidc_token = env.get("VERCEL_OIDC_TOKEN")
    if audience and sa_email and oidc_token:
        logger.info("Google auth: using workload identity federation")
        return WorkloadIdentityFederation(audience, sa_email, oidc_token, project_id)

    def _missing(*names):
        return ", ".join(n for n in names if not env.get(n)) or "none"

    raise ConfigurationError(
        "No Google credentials configured. Set one of:\n"
        "  1. GOOGLE_APPLICATION_CREDENTIALS_BASE64\n"
        "  2. GOOGLE_PRIVATE_KEY + GOOGLE_CLIENT_EMAIL "
        f"(missing: {_missing('GOOGLE_PRIVATE_KEY', 'GOOGLE_CLIENT_EMAIL')})\n"
        "  3. GOOGLE_WIF_AUDIENCE + GOOGLE_SERVICE_ACCOUNT_EMAIL + VERCEL_OIDC_TOKEN "
        f"(missing: {_missing('GOOGLE_WIF_AUDIENCE', 'GOOGLE_SERVICE_ACCOUNT_EMAIL', 'VERCEL_OIDC_TOKEN')})"
    )


# ═════════════════════════════════════════════════════════════════════════════
# Token provider
# ═════════════════════════════════════════════════════════════════════════════

class GoogleTokenProvider:
    """Builds credentials once from a source and refreshes them on demand."""

    def __init__(self, source: CredentialSource):
        self.source = source
        self._credentials = None
        self._lock = threading.Lock()

    @property
    def credentials(self):
        if self._credentials is None:
            self._credentials = self.source.build_credentials()
        return self._credentials

    def get_access_token(self) -> str:
        with self._lock:
            creds = self.credentials
            if not creds.valid:
                try:
                    creds.refresh(google.auth.transport.requests.Request())
                except GoogleAuthError as e:
                    raise AuthError(
                        f"Google token exchange failed ({self.source.auth_method}): {e}",
                        status_code=500,
                    )
            if not creds.token:
                raise AuthError("Google returned an empty access token", status_code=500)
            return creds.token


_provider: Optional[GoogleTokenProvider] = None
_provider_lock = threading.Lock()


def get_token_provider() -> GoogleTokenProvider:
    global _provider
    with _provider_lock:
        if _provider is None:
            _provider = GoogleTokenProvider(select_credential_source())
        return _provider


def get_access_token() -> str:
    return get_token_provider().get_access_token()


def reset_token_provider():
    """Forget the selected source (tests, credential rotation)."""
    global _provider
    with _provider_lock:
        _provider = None


def describe_auth(provider: Optional[GoogleTokenProvider] = None) -> dict:
    """Run one token exchange and report which method was used."""
    try:
        provider = provider or get_token_provider()
        token = provider.get_access_token()
    except HoloFrameError as e:
        logger.error(f"Google auth check failed: {e.message}")
        return {"success": False, "message": f"Google authentication failed: {e.message}"}

    return {
        "success": True,
        "message": "Google authentication succeeded; Vertex AI is reachable.",
        "authMethod": provider.source.auth_method,
        "projectId": provider.source.project_id,
        "tokenPreview": token[:20] + "...",
    }


def env_check(env: Optional[Mapping[str, str]] = None) -> dict:
    env = os.environ if env is None else env
    return {key: bool(env.get(key)) for key in ENV_KEYS}
