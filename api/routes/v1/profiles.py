"""
api/routes/v1/profiles.py -- Profile REST endpoints.

Routes:
  POST   /api/profiles            -- create the caller's profile (auth; 409 if one exists)
  GET    /api/profiles/{userId}   -- public view; email only for owner or admin
  PUT    /api/profiles/{userId}   -- partial update (owner or admin)
  DELETE /api/profiles/{userId}   -- delete (owner or admin)

A profile is always created for the authenticated caller, never for a user
id taken from the request, so a profile cannot reference a missing account.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ApiResponse, ProfileOut, ProfileRequest
from api.responses import respond
from auth.dependencies import get_current_user, try_get_current_user
from auth.models import UserAccount
from core.db import DuplicateKeyError
from core.errors import ConflictError, ForbiddenError, NotFoundError
from directory.models import Profile
from directory.store import DirectoryStore

# Auth policy:
# - GET /api/profiles/{userId}:  public, identity optional (try_get_current_user)
# - POST:                        requires auth (get_current_user)
# - PUT, DELETE:                 requires auth + owner-or-admin check
router = APIRouter()

_PROFILE_FIELDS = ("bio", "location", "country", "phone_number", "profile_image")


def _check_owner(current_user: UserAccount, user_id: int) -> None:
    if current_user.id != user_id and not current_user.is_admin:
        raise ForbiddenError("Not authorized to modify this profile")


@router.post("/profiles", response_model=ApiResponse[ProfileOut], status_code=201)
def create_profile(
    request: Request,
    body: ProfileRequest,
    current_user: UserAccount = Depends(get_current_user),
) -> JSONResponse:
    directory_store: DirectoryStore = request.app.state.directory_store
    values = {name: getattr(body, name) or "" for name in _PROFILE_FIELDS}
    profile = Profile(user_id=current_user.id, **values)
    try:
        directory_store.create_profile(profile)
    except DuplicateKeyError as exc:
        raise ConflictError("Profile already exists") from exc
    return respond(ProfileOut.build(current_user, profile, show_email=True), "Profile created successfully", 201)


@router.get("/profiles/{user_id}", response_model=ApiResponse[ProfileOut])
def get_profile(
    request: Request,
    user_id: int,
    viewer: Optional[UserAccount] = Depends(try_get_current_user),
) -> JSONResponse:
    """Merge the account's name with its profile fields.

    An account without a profile still gets a response, with blank fields.
    """
    account = request.app.state.user_store.get_by_id(user_id)
    if account is None:
        raise NotFoundError("User not found")
    directory_store: DirectoryStore = request.app.state.directory_store
    profile = directory_store.get_profile(user_id)
    show_email = viewer is not None and (viewer.id == user_id or viewer.is_admin)
    return respond(ProfileOut.build(account, profile, show_email=show_email))


@router.put("/profiles/{user_id}", response_model=ApiResponse[ProfileOut])
def update_profile(
    request: Request,
    user_id: int,
    body: ProfileRequest,
    current_user: UserAccount = Depends(get_current_user),
) -> JSONResponse:
    _check_owner(current_user, user_id)
    directory_store: DirectoryStore = request.app.state.directory_store
    profile = directory_store.get_profile(user_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    for name in body.model_fields_set & set(_PROFILE_FIELDS):
        setattr(profile, name, getattr(body, name) or "")
    directory_store.save_profile(profile)
    account = request.app.state.user_store.get_by_id(user_id)
    if account is None:
        raise NotFoundError("User not found")
    return respond(ProfileOut.build(account, profile, show_email=True), "Profile updated successfully")


@router.delete("/profiles/{user_id}")
def delete_profile(
    request: Request,
    user_id: int,
    current_user: UserAccount = Depends(get_current_user),
) -> JSONResponse:
    _check_owner(current_user, user_id)
    directory_store: DirectoryStore = request.app.state.directory_store
    if not directory_store.delete_profile(user_id):
        raise NotFoundError("Profile not found")
    return respond(message="Profile deleted successfully")
