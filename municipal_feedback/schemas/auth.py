from pydantic import EmailStr, Field

from .common import CamelModel


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str = Field(min_length=1)
