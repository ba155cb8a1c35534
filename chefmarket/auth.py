"""
Session authentication: current-user dependencies, role guards and the
account endpoints (register, login, logout, profile management).
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from chefmarket.config import get_settings
from chefmarket.db import (
    ClientProfileRecord,
    DbClient,
    ProviderProfileRecord,
    UserRecord,
)
from chefmarket.dependencies import get_db_client, get_session_store
from chefmarket.passwords import hash_password, verify_password
from chefmarket.schemas import (
    ClientProfileResponse,
    ClientProfileUpdateRequest,
    LoginRequest,
    ProviderProfileResponse,
    ProviderProfileUpdateRequest,
    RegisterRequest,
    StatusResponse,
    UserProfileResponse,
    UserResponse,
    UserUpdateRequest,
)
from chefmarket.sessions import SessionStore
from chefmarket.types import UserRole

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_COMMISSION_RATE = 26.0


def user_response(user: UserRecord) -> UserResponse:
    return UserResponse(**user.public_dict())


def client_profile_response(profile: ClientProfileRecord) -> ClientProfileResponse:
    return ClientProfileResponse(**profile.as_dict())


def provider_profile_response(
    profile: ProviderProfileRecord,
) -> ProviderProfileResponse:
    return ProviderProfileResponse(**profile.as_dict())


def get_optional_user(
    request: Request,
    db: DbClient = Depends(get_db_client),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[UserRecord]:
    token = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        return None
    user_id = sessions.get_user_id(token)
    if user_id is None:
        return None
    return db.get_user(user_id)


def get_current_user(
    user: Optional[UserRecord] = Depends(get_optional_user),
) -> UserRecord:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_role(*roles: UserRole):
    """Dependency factory allowing only users holding one of `roles`."""

    def dependency(user: UserRecord = Depends(get_current_user)) -> UserRecord:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Not authorized")
        return user

    return dependency


def _start_session(
    response: Response, sessions: SessionStore, user: UserRecord
) -> None:
    settings = get_settings()
    token = sessions.create(user.id, settings.session_max_age_seconds)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    payload: RegisterRequest,
    response: Response,
    db: DbClient = Depends(get_db_client),
    sessions: SessionStore = Depends(get_session_store),
):
    if db.get_user_by_username(payload.username):
        raise HTTPException(status_code=400, detail="Username already exists")
    if db.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    fields = payload.model_dump(exclude={"password", "role"})
    user = db.create_user(
        **fields,
        password=hash_password(payload.password),
        role=UserRole(payload.role),
    )
    if user.role == UserRole.CLIENT:
        db.create_client_profile(user.id, total_spent=0.0)
    elif user.role == UserRole.PROVIDER:
        db.create_provider_profile(
            user.id,
            emergency_support=False,
            dual_expertise=False,
            availability_24_7=False,
            documents_submitted=False,
            document_links=[],
            commission_rate=DEFAULT_COMMISSION_RATE,
        )
    logger.info("Registered %s user id=%s", user.role.value, user.id)

    _start_session(response, sessions, user)
    return user_response(user)


@router.post("/login", response_model=UserResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: DbClient = Depends(get_db_client),
    sessions: SessionStore = Depends(get_session_store),
):
    user = db.get_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password):
        logger.info("Failed login for username=%r", payload.username)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    user = db.update_user(user.id, last_login=time.time()) or user
    previous = request.cookies.get(get_settings().session_cookie_name)
    if previous:
        sessions.delete(previous)
    _start_session(response, sessions, user)
    return user_response(user)


@router.post("/logout", response_model=StatusResponse)
def logout(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
):
    settings = get_settings()
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        sessions.delete(token)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return StatusResponse(success=True, message="Logged out")


@router.get("/user", response_model=UserResponse)
def current_user(user: UserRecord = Depends(get_current_user)):
    return user_response(user)


@router.get("/user/profile", response_model=UserProfileResponse)
def current_user_profile(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    profile = None
    if user.role == UserRole.CLIENT:
        client_profile = db.get_client_profile(user.id)
        if client_profile:
            profile = client_profile_response(client_profile)
    elif user.role == UserRole.PROVIDER:
        provider_profile = db.get_provider_profile(user.id)
        if provider_profile:
            profile = provider_profile_response(provider_profile)
    return UserProfileResponse(user=user_response(user), profile=profile)


@router.patch("/user", response_model=UserResponse)
def update_current_user(
    payload: UserUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    fields = payload.model_dump(exclude_unset=True)
    for required in ("username", "email", "fullname"):
        if fields.get(required, "") is None:
            del fields[required]

    if "username" in fields:
        existing = db.get_user_by_username(fields["username"])
        if existing and existing.id != user.id:
            raise HTTPException(status_code=409, detail="Username already exists")
    if "email" in fields:
        existing = db.get_user_by_email(fields["email"])
        if existing and existing.id != user.id:
            raise HTTPException(status_code=409, detail="Email already exists")

    updated = db.update_user(user.id, **fields)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return user_response(updated)


@router.patch("/user/client-profile", response_model=ClientProfileResponse)
def update_client_profile(
    payload: ClientProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if user.role != UserRole.CLIENT:
        raise HTTPException(
            status_code=403, detail="Only clients can update client profiles"
        )
    profile = db.update_client_profile(
        user.id, **payload.model_dump(exclude_unset=True)
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Client profile not found")
    return client_profile_response(profile)


@router.patch("/user/provider-profile", response_model=ProviderProfileResponse)
def update_provider_profile(
    payload: ProviderProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if user.role != UserRole.PROVIDER:
        raise HTTPException(
            status_code=403, detail="Only providers can update provider profiles"
        )
    fields = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }
    profile = db.update_provider_profile(user.id, **fields)
    if not profile:
        raise HTTPException(status_code=404, detail="Provider profile not found")
    return provider_profile_response(profile)
