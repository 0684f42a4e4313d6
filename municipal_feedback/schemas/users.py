import uuid
from typing import Optional

from pydantic import EmailStr, Field, model_validator

from ..models.models import UserRole
from .common import CamelModel


class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=255)
    role: UserRole = UserRole.USER
    municipality_id: Optional[uuid.UUID] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    language: str = Field(default="EN", min_length=2, max_length=8)

    @model_validator(mode="after")
    def _municipality_admin_needs_municipality(self):
        if self.role == UserRole.MUNICIPALITY_ADMIN and self.municipality_id is None:
            raise ValueError("municipalityId is required for MUNICIPALITY_ADMIN users")
        return self


class UserUpdate(CamelModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[UserRole] = None
    municipality_id: Optional[uuid.UUID] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    language: Optional[str] = Field(default=None, min_length=2, max_length=8)
