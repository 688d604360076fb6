from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class MemberLogin(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    must_change_password: bool = False


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class CurrentMemberResponse(BaseModel):
    id: str
    username: Optional[str] = None
    first_names: str
    last_name: str
    email: Optional[str] = None
    role: str
    status: str
    must_change_password: bool
    membership_reference: str
    form_code: Optional[str] = None

    class Config:
        from_attributes = True
