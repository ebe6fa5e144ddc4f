"""
auth.py — PIN unlock and biometric preference routes.

Routes:
  POST /auth/pin        unlock with the 6-digit PIN (first call sets it up)
  GET  /auth/biometric  read the biometric-unlock preference
  PUT  /auth/biometric  change it

A wrong PIN is 401 so the client can simply ask again; a storage outage is
503 and means nothing was checked or saved.

All errors use HTTPException so FastAPI serialises them as:
  { "detail": "..." }
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from verisight.core.config import settings
from verisight.core.errors import StorageUnavailable
from verisight.core.security import create_access_token, decode_access_token
from verisight.models.auth import BiometricSetting, PinRequest, UnlockResponse
from verisight.services.credential_store import CredentialStore
from verisight.services.stores import get_credential_store

router = APIRouter(prefix="/auth", tags=["auth"])

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]
CredentialStoreDep = Annotated[CredentialStore, Depends(get_credential_store)]

_SESSION_SUBJECT = "device-owner"


def _storage_error(exc: StorageUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Credential storage unavailable: {exc.reason}",
    )


async def require_session(credentials: CredDep) -> None:
    """
    FastAPI dependency guarding the analysis routes.

    Only enforced when settings.require_auth is on; raises 401 if the bearer
    token is missing or invalid.
    """
    if not settings.require_auth:
        return

    if not credentials or not decode_access_token(credentials.credentials):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/pin", response_model=UnlockResponse)
async def unlock(payload: PinRequest, store: CredentialStoreDep):
    """Verify the PIN, or store it if none has been set yet, and return a session token."""
    try:
        first_time = not await store.has_pin()
        ok = await store.authenticate(payload.pin)
    except StorageUnavailable as exc:
        raise _storage_error(exc)

    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect PIN",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return UnlockResponse(
        authenticated=True,
        first_time_setup=first_time,
        access_token=create_access_token(_SESSION_SUBJECT),
    )


@router.get("/biometric", response_model=BiometricSetting)
async def get_biometric(store: CredentialStoreDep):
    return BiometricSetting(enabled=await store.biometric_enabled())


@router.put("/biometric", response_model=BiometricSetting, dependencies=[Depends(require_session)])
async def set_biometric(payload: BiometricSetting, store: CredentialStoreDep):
    try:
        await store.set_biometric(payload.enabled)
    except StorageUnavailable as exc:
        raise _storage_error(exc)
    return payload
