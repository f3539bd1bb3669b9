"""Pydantic schemas for ride posts. Wire format uses camelCase keys (mobile client contract)."""
import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from kampusroute.services.proximity import GeoPoint


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class GeoPointIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_point(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class PostCreate(CamelModel):
    """Request body for POST /posts and PUT /posts/{id}."""
    source_address: str = Field(..., min_length=1, max_length=512)
    source_coordinates: GeoPointIn | None = None
    destination_university: str = Field(..., min_length=1, max_length=255)
    destination_faculty: str = Field(..., min_length=1, max_length=255)
    route: list[GeoPointIn] = Field(..., min_length=1)
    datetime_start: datetime
    datetime_end: datetime
    price: float | None = Field(default=None, ge=0)

    @field_validator("source_coordinates", "route", mode="before")
    @classmethod
    def _decode_json_text(cls, v: Any) -> Any:
        # The mobile client sends these as JSON strings
        if isinstance(v, str):
            v = json.loads(v)
        return v

    @model_validator(mode="after")
    def _check_window(self) -> "PostCreate":
        same_kind = (self.datetime_start.tzinfo is None) == (self.datetime_end.tzinfo is None)
        if same_kind and self.datetime_end < self.datetime_start:
            raise ValueError("datetimeEnd must not be before datetimeStart")
        return self

    def to_repository_data(self) -> dict[str, Any]:
        return {
            "source_address": self.source_address,
            "source_coordinates": self.source_coordinates.to_point() if self.source_coordinates else None,
            "destination_university": self.destination_university,
            "destination_faculty": self.destination_faculty,
            "route": [p.to_point() for p in self.route],
            "datetime_start": self.datetime_start,
            "datetime_end": self.datetime_end,
            "price": self.price,
        }


class PostUpdate(PostCreate):
    """PUT replaces every editable field."""


class UserSummary(CamelModel):
    id: str
    name: str | None = None
    surname: str | None = None
    email: str | None = None
    university: str | None = None
    faculty: str | None = None
    profile_picture: str | None = None


class InterestedUserResponse(CamelModel):
    id: str
    user_id: str
    post_id: str
    location_coordinates: str | None = None
    created_at: datetime | None = None
    user: UserSummary | None = None


class PostResponse(CamelModel):
    id: str
    user_id: str
    source_address: str
    source_coordinates: str | None = None
    destination_university: str
    destination_faculty: str
    route: str
    datetime_start: datetime
    datetime_end: datetime
    price: float | None = None
    matched_user_id: str | None = None
    created_at: datetime | None = None
    user: UserSummary | None = None
    interested_users: list[InterestedUserResponse] = []


class NearbyPostResponse(PostResponse):
    """Post plus its closest approach to the rider, in km."""
    min_distance: float


class InterestRequest(CamelModel):
    location_coordinates: GeoPointIn | None = None

    @field_validator("location_coordinates", mode="before")
    @classmethod
    def _decode_json_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = json.loads(v)
        return v


class InterestResponse(CamelModel):
    message: str
    user_post: InterestedUserResponse


class MatchRequest(CamelModel):
    matched_user_id: str = Field(..., min_length=1)


class MatchResponse(CamelModel):
    post: PostResponse
    matched_user: UserSummary


class MessageResponse(BaseModel):
    message: str
