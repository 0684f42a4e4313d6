import uuid
from typing import List, Optional

from pydantic import AliasChoices, Field

from ..models.models import FeedbackCategory, FeedbackStatus
from .common import CamelModel


class Location(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class FeedbackCreate(CamelModel):
    description: str = Field(min_length=1, max_length=5000)
    category: FeedbackCategory
    location: Location
    address: Optional[str] = Field(default=None, max_length=500)
    images: List[str] = Field(default_factory=list)
    # Optional here so a missing value surfaces as MunicipalityRequired rather than a field error
    municipality_id: Optional[uuid.UUID] = None


class FeedbackUpdate(CamelModel):
    """Full replacement of the editable fields (PUT)."""
    description: str = Field(min_length=1, max_length=5000)
    category: FeedbackCategory
    location: Location
    address: Optional[str] = Field(default=None, max_length=500)
    images: List[str] = Field(default_factory=list)
    status: Optional[FeedbackStatus] = None


class FeedbackPatch(CamelModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    category: Optional[FeedbackCategory] = None
    location: Optional[Location] = None
    address: Optional[str] = Field(default=None, max_length=500)
    images: Optional[List[str]] = None
    status: Optional[FeedbackStatus] = None


class StatusUpdate(CamelModel):
    status: FeedbackStatus


class CommentCreate(CamelModel):
    # The dashboard posts {"comment": "..."}
    text: str = Field(min_length=1, max_length=2000, validation_alias=AliasChoices("text", "comment"))
