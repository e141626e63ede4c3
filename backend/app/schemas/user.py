from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional
from datetime import datetime
from app.models.user import UserRole

class Token(BaseModel):
    access_token: str
    token_type: str
    landing: str

class TokenPayload(BaseModel):
    sub: Optional[str] = None
    sid: Optional[str] = None

class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    email: EmailStr
    role: UserRole
    created_at: Optional[datetime] = None

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: str
    role: UserRole

class MeResponse(BaseModel):
    profile: UserProfile
    landing: str
