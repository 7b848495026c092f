from pydantic import BaseModel, EmailStr, ConfigDict, field_validator
from typing import Optional
from datetime import datetime


class UserRegister(BaseModel):
    full_name: str
    email: EmailStr
    phone: str
    password: str
    company_name: Optional[str] = None

    model_config = ConfigDict(extra='ignore')

    @field_validator('full_name', 'phone')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('This field is required')
        return v.strip()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters')
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    full_name: str
    email: str
    phone: str
    company_name: Optional[str] = None
    role: str
    status: str
    balance: float
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    email: str
    full_name: Optional[str]
    role: str


class ApiTokenCreate(BaseModel):
    name: str
    mode: str = "test"


class ApiTokenResponse(BaseModel):
    """Le secret n'est jamais relu après la création."""
    id: int
    name: str
    key_id: str
    mode: str
    status: str
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApiTokenCreated(ApiTokenResponse):
    secret_key: str
