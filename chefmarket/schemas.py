"""
Pydantic schemas for the marketplace API.

JSON bodies use camelCase keys; Python code uses snake_case. Every model
accepts either spelling on input and emits camelCase.
"""

from __future__ import annotations

import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chefmarket.types import BookingStatus, UserRole, VerificationStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# Auth and account management


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=6, max_length=256)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    fullname: str = Field(..., min_length=2, max_length=128)
    role: Literal["client", "provider"] = "client"
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None


class LoginRequest(CamelModel):
    username: str
    password: str


class UserUpdateRequest(CamelModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=254)
    fullname: Optional[str] = Field(default=None, min_length=2, max_length=128)
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None


class ClientProfileUpdateRequest(CamelModel):
    preferences: Optional[str] = None
    payment_methods: Optional[str] = None
    referral_code: Optional[str] = None


class ProviderProfileUpdateRequest(CamelModel):
    cuisine_specialty: Optional[str] = None
    years_experience: Optional[int] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    availability: Optional[str] = None
    emergency_support: Optional[bool] = None
    dual_expertise: Optional[bool] = None
    availability_24_7: Optional[bool] = Field(default=None, alias="availability24_7")
    documents_submitted: Optional[bool] = None
    document_links: Optional[list[str]] = None


class UserResponse(CamelModel):
    id: int
    username: str
    email: str
    fullname: str
    phone: Optional[str]
    role: UserRole
    profile_image: Optional[str]
    bio: Optional[str]
    location: Optional[str]
    is_verified: bool
    last_login: Optional[float]
    created_at: float
    updated_at: float


class ClientProfileResponse(CamelModel):
    id: int
    user_id: int
    preferences: Optional[str]
    payment_methods: Optional[str]
    referral_code: Optional[str]
    total_spent: float


class ProviderProfileResponse(CamelModel):
    id: int
    user_id: int
    cuisine_specialty: Optional[str]
    years_experience: Optional[int]
    hourly_rate: Optional[float]
    availability: Optional[str]
    emergency_support: bool
    dual_expertise: bool
    availability_24_7: bool = Field(alias="availability24_7")
    total_bookings: int
    verification_status: VerificationStatus
    documents_submitted: bool
    document_links: list[str]
    commission_rate: float


class UserProfileResponse(CamelModel):
    user: UserResponse
    profile: Union[ClientProfileResponse, ProviderProfileResponse, None]


# Catalog


class ChefResponse(CamelModel):
    id: int
    name: str
    profile_image: str
    cuisine: str
    price: int
    description: str
    rating: str
    review_count: int
    provider_id: Optional[int]


class MenuResponse(CamelModel):
    id: int
    chef_id: Optional[int]
    name: str
    image: str
    description: str
    courses: str
    guest_range: str
    price: int
    items: list[str]


class ServiceCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    duration: Optional[int] = Field(default=None, ge=1)
    is_video_consultation: bool = False
    is_face_to_face: bool = True


class ServiceUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    duration: Optional[int] = Field(default=None, ge=1)
    is_video_consultation: Optional[bool] = None
    is_face_to_face: Optional[bool] = None


class ServiceResponse(CamelModel):
    id: int
    provider_id: int
    name: str
    description: Optional[str]
    price: float
    duration: Optional[int]
    is_video_consultation: bool
    is_face_to_face: bool


class ProviderSummary(CamelModel):
    user: UserResponse
    profile: ProviderProfileResponse
    average_rating: Optional[float]


class ProviderDetail(ProviderSummary):
    services: list[ServiceResponse]


# Bookings


class BookingCreateRequest(CamelModel):
    provider_id: Optional[int] = None
    service_id: Optional[int] = None
    event_type: str = Field(..., min_length=1, max_length=100)
    date: str = Field(..., pattern=DATE_PATTERN)
    time: str = Field(..., pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    guests: Optional[int] = Field(default=None, ge=1)
    cuisine: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=500)
    special_requests: Optional[str] = None
    total_amount: Optional[float] = Field(default=None, ge=0)

    @field_validator("date")
    @classmethod
    def check_calendar_date(cls, value: str) -> str:
        datetime.date.fromisoformat(value)
        return value


class BookingStatusUpdate(CamelModel):
    status: BookingStatus


class BookingResponse(CamelModel):
    id: int
    client_id: Optional[int]
    provider_id: Optional[int]
    service_id: Optional[int]
    event_type: str
    date: str
    time: str
    end_time: Optional[str]
    guests: Optional[int]
    cuisine: Optional[str]
    location: str
    special_requests: Optional[str]
    status: BookingStatus
    total_amount: Optional[float]
    client_fee: Optional[float]
    provider_commission: Optional[float]
    payment_status: str
    created_at: float
    updated_at: float


# Reviews


class ReviewCreateRequest(CamelModel):
    provider_id: int
    booking_id: Optional[int] = None
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)


class ReviewResponse(CamelModel):
    id: int
    booking_id: Optional[int]
    client_id: int
    provider_id: int
    rating: int
    comment: Optional[str]
    created_at: float
    updated_at: float


# Messaging


class MessageCreateRequest(CamelModel):
    recipient_id: int
    content: str = Field(..., min_length=1, max_length=5000)
    booking_id: Optional[int] = None
    attachments: list[str] = Field(default_factory=list)


class MessageResponse(CamelModel):
    id: int
    sender_id: int
    recipient_id: int
    booking_id: Optional[int]
    content: str
    attachments: list[str]
    is_read: bool
    sent_at: float
    read_at: Optional[float]


class UnreadCountResponse(CamelModel):
    count: int


# Uploads


class UploadSignRequest(CamelModel):
    kind: Literal["profile_image", "verification_document"]
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(default="application/octet-stream", max_length=128)


class UploadSignResponse(CamelModel):
    upload_url: str
    path: str
    public_url: str


# Misc


class StatusResponse(CamelModel):
    success: bool
    message: str


class HealthResponse(CamelModel):
    status: Literal["ok"]
