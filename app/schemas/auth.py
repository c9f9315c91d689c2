from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime


class LoginRequest(BaseModel):
    """Email/password login request"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=1024)
    device_id: Optional[str] = Field(None, max_length=128)


class GoogleExchangeRequest(BaseModel):
    """Google authorization code issued to the frontend"""
    code: str = Field(..., min_length=1)
    redirect_uri: Optional[str] = None
    code_verifier: Optional[str] = Field(None, min_length=43, max_length=128)
    device_id: Optional[str] = Field(None, max_length=128)


class TokenResponse(BaseModel):
    """Access token response; the refresh token travels only in its cookie."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    session_id: str


class SessionResponse(BaseModel):
    """One live session (the current tip of a token family)"""
    id: str
    family_id: str
    device_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    issued_at: datetime
    expires_at: datetime
    family_issued_at: datetime
    current: bool = False

    model_config = ConfigDict(from_attributes=True)
