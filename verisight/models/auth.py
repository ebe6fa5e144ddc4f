"""
auth.py — Pydantic schemas for the PIN unlock and biometric preference routes.

  PinRequest         what the client sends to unlock (or, first time, to set up)
  UnlockResponse     result of an unlock attempt, with a session token on success
  BiometricSetting   biometric-unlock preference, read and written as a whole
"""

from typing import Optional

from pydantic import BaseModel, Field


class PinRequest(BaseModel):
    """Payload for POST /auth/pin. Exactly six digits."""
    pin: str = Field(pattern=r"^\d{6}$")


class UnlockResponse(BaseModel):
    authenticated: bool
    first_time_setup: bool = False
    access_token: Optional[str] = None
    token_type: str = "bearer"


class BiometricSetting(BaseModel):
    enabled: bool
