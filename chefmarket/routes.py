"""
HTTP routes for the marketplace API.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query

from chefmarket.auth import (
    get_current_user,
    provider_profile_response,
    require_role,
    user_response,
)
from chefmarket.config import get_settings
from chefmarket.db import (
    BookingRecord,
    DbClient,
    MessageRecord,
    ProviderFilters,
    ProviderMatch,
    ProviderProfileRecord,
    ReviewRecord,
    ServiceRecord,
    StatusConflictError,
    UserRecord,
)
from chefmarket.dependencies import get_db_client, get_storage_client
from chefmarket.schemas import (
    BookingCreateRequest,
    BookingResponse,
    BookingStatusUpdate,
    ChefResponse,
    HealthResponse,
    MenuResponse,
    MessageCreateRequest,
    MessageResponse,
    ProviderDetail,
    ProviderSummary,
    ReviewCreateRequest,
    ReviewResponse,
    ServiceCreateRequest,
    ServiceResponse,
    ServiceUpdateRequest,
    StatusResponse,
    UnreadCountResponse,
    UploadSignRequest,
    UploadSignResponse,
    UserResponse,
)
from chefmarket.seed import seed_catalog
from chefmarket.storage import StorageClient
from chefmarket.types import ProviderSort, UserRole, can_transition

logger = logging.getLogger(__name__)

router = APIRouter()

require_admin = require_role(UserRole.ADMIN)
require_client = require_role(UserRole.CLIENT)
require_provider = require_role(UserRole.PROVIDER)


def _service_response(service: ServiceRecord) -> ServiceResponse:
    return ServiceResponse(**service.as_dict())


def _booking_response(booking: BookingRecord) -> BookingResponse:
    return BookingResponse(**booking.as_dict())


def _review_response(review: ReviewRecord) -> ReviewResponse:
    return ReviewResponse(**review.as_dict())


def _message_response(message: MessageRecord) -> MessageResponse:
    return MessageResponse(**message.as_dict())


def _provider_summary(match: ProviderMatch) -> ProviderSummary:
    return ProviderSummary(
        user=user_response(match.user),
        profile=provider_profile_response(match.profile),
        average_rating=match.average_rating,
    )


def _require_provider_profile(db: DbClient, user_id: int) -> ProviderProfileRecord:
    profile = db.get_provider_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Provider not found")
    return profile


def _owned_service(
    db: DbClient, service_id: int, user: UserRecord
) -> ServiceRecord:
    service = db.get_service(service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    profile = db.get_provider_profile(user.id)
    if not profile or profile.id != service.provider_id:
        raise HTTPException(
            status_code=403, detail="Not authorized to modify this service"
        )
    return service


def _safe_filename(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip(".-")
    return name or "upload"


# Setup and health


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/setup/database", response_model=StatusResponse)
def setup_database(
    _: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    db.create_schema()
    seeded = seed_catalog(db)
    message = "Database initialized"
    if seeded:
        message += " and catalog seeded"
    return StatusResponse(success=True, message=message)


# Legacy catalog


@router.get("/chefs", response_model=list[ChefResponse])
def list_chefs(
    cuisine: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
):
    chefs = db.list_chefs_by_cuisine(cuisine) if cuisine else db.list_chefs()
    return [ChefResponse(**chef.as_dict()) for chef in chefs]


@router.get("/chefs/{chef_id}", response_model=ChefResponse)
def get_chef(chef_id: int, db: DbClient = Depends(get_db_client)):
    chef = db.get_chef(chef_id)
    if not chef:
        raise HTTPException(status_code=404, detail="Chef not found")
    return ChefResponse(**chef.as_dict())


@router.get("/chefs/{chef_id}/menus", response_model=list[MenuResponse])
def list_chef_menus(chef_id: int, db: DbClient = Depends(get_db_client)):
    if not db.get_chef(chef_id):
        raise HTTPException(status_code=404, detail="Chef not found")
    return [MenuResponse(**menu.as_dict()) for menu in db.list_menus_by_chef(chef_id)]


@router.get("/menus", response_model=list[MenuResponse])
def list_menus(db: DbClient = Depends(get_db_client)):
    return [MenuResponse(**menu.as_dict()) for menu in db.list_menus()]


@router.get("/menus/{menu_id}", response_model=MenuResponse)
def get_menu(menu_id: int, db: DbClient = Depends(get_db_client)):
    menu = db.get_menu(menu_id)
    if not menu:
        raise HTTPException(status_code=404, detail="Menu not found")
    return MenuResponse(**menu.as_dict())


# Providers and services


@router.get("/providers", response_model=list[ProviderSummary])
def list_providers(
    cuisine: Optional[str] = None,
    location: Optional[str] = None,
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    rating: Optional[float] = Query(default=None, ge=0, le=5),
    emergency_support: bool = Query(default=False, alias="emergencySupport"),
    dual_expertise: bool = Query(default=False, alias="dualExpertise"),
    availability_24_7: bool = Query(default=False, alias="availability24_7"),
    search_term: Optional[str] = Query(default=None, alias="searchTerm"),
    sort_by: Optional[ProviderSort] = Query(default=None, alias="sortBy"),
    db: DbClient = Depends(get_db_client),
):
    filters = ProviderFilters(
        cuisine=cuisine,
        location=location,
        min_price=min_price,
        max_price=max_price,
        rating=rating,
        emergency_support=emergency_support,
        dual_expertise=dual_expertise,
        availability_24_7=availability_24_7,
        search_term=search_term,
        sort_by=sort_by,
    )
    return [_provider_summary(match) for match in db.search_providers(filters)]


@router.get("/providers/{user_id}", response_model=ProviderDetail)
def get_provider(user_id: int, db: DbClient = Depends(get_db_client)):
    profile = _require_provider_profile(db, user_id)
    user = db.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="Provider not found")
    services = db.list_services_by_provider(profile.id)
    return ProviderDetail(
        user=user_response(user),
        profile=provider_profile_response(profile),
        average_rating=db.average_rating(user_id),
        services=[_service_response(service) for service in services],
    )


@router.get("/providers/{user_id}/services", response_model=list[ServiceResponse])
def list_provider_services(user_id: int, db: DbClient = Depends(get_db_client)):
    profile = _require_provider_profile(db, user_id)
    return [_service_response(s) for s in db.list_services_by_provider(profile.id)]


@router.get("/providers/{user_id}/reviews", response_model=list[ReviewResponse])
def list_provider_reviews(user_id: int, db: DbClient = Depends(get_db_client)):
    _require_provider_profile(db, user_id)
    return [_review_response(r) for r in db.list_reviews_by_provider(user_id)]


@router.post("/services", response_model=ServiceResponse, status_code=201)
def create_service(
    payload: ServiceCreateRequest,
    user: UserRecord = Depends(require_provider),
    db: DbClient = Depends(get_db_client),
):
    profile = _require_provider_profile(db, user.id)
    service = db.create_service(provider_id=profile.id, **payload.model_dump())
    return _service_response(service)


@router.patch("/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: int,
    payload: ServiceUpdateRequest,
    user: UserRecord = Depends(require_provider),
    db: DbClient = Depends(get_db_client),
):
    _owned_service(db, service_id, user)
    fields = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in ("description", "duration")
    }
    updated = db.update_service(service_id, **fields)
    if not updated:
        raise HTTPException(status_code=404, detail="Service not found")
    return _service_response(updated)


@router.delete("/services/{service_id}", response_model=StatusResponse)
def delete_service(
    service_id: int,
    user: UserRecord = Depends(require_provider),
    db: DbClient = Depends(get_db_client),
):
    _owned_service(db, service_id, user)
    if not db.delete_service(service_id):
        raise HTTPException(status_code=404, detail="Service not found")
    return StatusResponse(success=True, message="Service deleted")


# Bookings


@router.post("/bookings", response_model=BookingResponse, status_code=201)
def create_booking(
    payload: BookingCreateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    fields = payload.model_dump()
    provider_id = payload.provider_id

    if payload.service_id is not None:
        service = db.get_service(payload.service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        owner = db.get_provider_profile_by_id(service.provider_id)
        if provider_id is None and owner:
            provider_id = owner.user_id
        elif not owner or owner.user_id != provider_id:
            raise HTTPException(
                status_code=400, detail="Service is not offered by this provider"
            )

    if provider_id is not None:
        _require_provider_profile(db, provider_id)
    fields["provider_id"] = provider_id

    booking = db.create_booking(client_id=user.id, **fields)
    logger.info(
        "Booking %s created by user %s for provider %s",
        booking.id,
        user.id,
        provider_id,
    )
    return _booking_response(booking)


@router.get("/bookings", response_model=list[BookingResponse])
def list_bookings(
    _: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    return [_booking_response(b) for b in db.list_bookings()]


@router.get("/bookings/client", response_model=list[BookingResponse])
def list_client_bookings(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return [_booking_response(b) for b in db.list_bookings_by_client(user.id)]


@router.get("/bookings/provider", response_model=list[BookingResponse])
def list_provider_bookings(
    user: UserRecord = Depends(require_provider),
    db: DbClient = Depends(get_db_client),
):
    return [_booking_response(b) for b in db.list_bookings_by_provider(user.id)]


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    booking = db.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if user.role != UserRole.ADMIN and user.id not in (
        booking.client_id,
        booking.provider_id,
    ):
        raise HTTPException(status_code=403, detail="Not authorized")
    current = booking.status
    if not can_transition(current, payload.status):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot change booking status from "
            f"{current.value} to {payload.status.value}",
        )
    if current == payload.status:
        return _booking_response(booking)

    try:
        updated = db.update_booking_status(
            booking_id, payload.status, expected=current
        )
    except StatusConflictError:
        raise HTTPException(
            status_code=409, detail="Booking status changed, reload and retry"
        )
    if not updated:
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info(
        "Booking %s moved to %s by user %s", booking_id, updated.status.value, user.id
    )
    return _booking_response(updated)


# Reviews


@router.post("/reviews", response_model=ReviewResponse, status_code=201)
def create_review(
    payload: ReviewCreateRequest,
    user: UserRecord = Depends(require_client),
    db: DbClient = Depends(get_db_client),
):
    _require_provider_profile(db, payload.provider_id)
    if payload.booking_id is not None:
        booking = db.get_booking(payload.booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.client_id != user.id:
            raise HTTPException(
                status_code=403, detail="Booking does not belong to you"
            )
        if booking.provider_id != payload.provider_id:
            raise HTTPException(
                status_code=400, detail="Booking is not with this provider"
            )
    review = db.create_review(client_id=user.id, **payload.model_dump())
    return _review_response(review)


# Saved providers


def _client_profile_id(db: DbClient, user: UserRecord) -> int:
    profile = db.get_client_profile(user.id)
    if not profile:
        raise HTTPException(status_code=404, detail="Client profile not found")
    return profile.id


@router.get("/saved-providers", response_model=list[UserResponse])
def list_saved_providers(
    user: UserRecord = Depends(require_client),
    db: DbClient = Depends(get_db_client),
):
    profile_id = _client_profile_id(db, user)
    return [user_response(p) for p in db.list_saved_providers(profile_id)]


@router.put("/saved-providers/{provider_id}", response_model=StatusResponse)
def save_provider(
    provider_id: int,
    user: UserRecord = Depends(require_client),
    db: DbClient = Depends(get_db_client),
):
    profile_id = _client_profile_id(db, user)
    _require_provider_profile(db, provider_id)
    db.save_provider(profile_id, provider_id)
    return StatusResponse(success=True, message="Provider saved")


@router.delete("/saved-providers/{provider_id}", response_model=StatusResponse)
def unsave_provider(
    provider_id: int,
    user: UserRecord = Depends(require_client),
    db: DbClient = Depends(get_db_client),
):
    profile_id = _client_profile_id(db, user)
    if not db.unsave_provider(profile_id, provider_id):
        raise HTTPException(status_code=404, detail="Saved provider not found")
    return StatusResponse(success=True, message="Provider removed")


# Messaging


@router.post("/messages", response_model=MessageResponse, status_code=201)
def send_message(
    payload: MessageCreateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if payload.recipient_id == user.id:
        raise HTTPException(status_code=400, detail="Cannot message yourself")
    if not db.get_user(payload.recipient_id):
        raise HTTPException(status_code=404, detail="Recipient not found")
    if payload.booking_id is not None:
        booking = db.get_booking(payload.booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if user.id not in (booking.client_id, booking.provider_id):
            raise HTTPException(status_code=403, detail="Not authorized")
    message = db.send_message(sender_id=user.id, **payload.model_dump())
    return _message_response(message)


@router.get("/messages/unread-count", response_model=UnreadCountResponse)
def unread_count(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return UnreadCountResponse(count=db.count_unread_messages(user.id))


@router.get("/messages/with/{user_id}", response_model=list[MessageResponse])
def get_conversation(
    user_id: int,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if not db.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return [_message_response(m) for m in db.get_conversation(user.id, user_id)]


@router.post("/messages/{message_id}/read", response_model=MessageResponse)
def mark_message_read(
    message_id: int,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    message = db.get_message(message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.recipient_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    if not message.is_read:
        db.mark_message_read(message_id)
        message = db.get_message(message_id) or message
    return _message_response(message)


# Uploads


@router.post("/uploads/sign", response_model=UploadSignResponse)
def sign_upload(
    payload: UploadSignRequest,
    user: UserRecord = Depends(get_current_user),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Return a presigned PUT URL; the client uploads the file directly.
    """
    filename = f"{uuid4().hex}-{_safe_filename(payload.filename)}"
    if payload.kind == "verification_document":
        if user.role != UserRole.PROVIDER:
            raise HTTPException(
                status_code=403,
                detail="Only providers can upload verification documents",
            )
        path = f"providers/{user.id}/documents/{filename}"
    else:
        path = f"users/{user.id}/profile/{filename}"

    upload_url = storage.presign_put(
        path,
        content_type=payload.content_type,
        expires_in=get_settings().upload_url_expires_seconds,
    )
    return UploadSignResponse(
        upload_url=upload_url, path=path, public_url=storage.public_url(path)
    )


# Admin


@router.get("/users", response_model=list[UserResponse])
def list_users(
    _: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    return [user_response(u) for u in db.list_users()]
