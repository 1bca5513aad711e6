from pydantic import BaseModel, Field
from datetime import datetime


class LoginRequest(BaseModel):
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthContext(BaseModel):
    subject: str
    expires_at: datetime
