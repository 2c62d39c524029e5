"""
api/routes/v1/users.py -- User administration REST endpoints.

Routes:
  POST   /api/users               -- create an account directly (admin)
  GET    /api/users               -- filtered, sorted, paginated list + statistics (admin)
  GET    /api/users/statistics    -- totals, 30-day registration trend, verification rate (admin)
  DELETE /api/users/bulk-delete   -- delete several accounts (admin)
  GET    /api/users/{id}          -- account detail (admin)
  PATCH  /api/users/{id}          -- update an account (self or admin)
  DELETE /api/users/{id}          -- delete an account and its profile (admin)
  PATCH  /api/users/{id}/status   -- set email verification state (admin)
  PATCH  /api/users/{id}/role     -- change role (admin)

Static paths (/statistics, /bulk-delete) are registered before /{user_id}
so they are never captured by the path parameter.

Security:
  An admin cannot delete, bulk-delete or change the role of their own
  account, which prevents an admin from locking everyone out by accident.
  A non-admin may only update their own name, email and password.
  Responses never carry password hashes or token values.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    ApiResponse,
    BulkDeleteData,
    BulkDeleteRequest,
    RoleChangeData,
    StatisticsOverview,
    StatusChangeData,
    TrendPoint,
    UserCreateRequest,
    UserData,
    UserDetailData,
    UserDetailOut,
    UserListData,
    UserListStatistics,
    UserOut,
    UserPagination,
    UserRoleRequest,
    UserStatisticsData,
    UserStatusRequest,
    UserUpdateRequest,
)
from api.responses import respond
from auth.dependencies import get_current_user, require_admin
from auth.models import Role, UserAccount
from auth.service import AccountService
from auth.store import UserQuery, UserStore
from core.errors import ForbiddenError, NotFoundError, ValidationError
from directory.store import DirectoryStore

# Auth policy:
# - PATCH /api/users/{id}: requires auth (get_current_user) + self-or-admin check
# - every other route:     requires admin (require_admin)
router = APIRouter()

_SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "fullName": "full_name",
    "email": "email",
    "role": "role",
}


def _load(request: Request, user_id: int) -> UserAccount:
    account = request.app.state.user_store.get_by_id(user_id)
    if account is None:
        raise NotFoundError("User not found")
    return account


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("/users", response_model=ApiResponse[UserData], status_code=201)
def create_user(
    request: Request,
    body: UserCreateRequest,
    _admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    """Create an account without the signup email flow."""
    service: AccountService = request.app.state.account_service
    account = service.create_account(
        body.email,
        body.password,
        body.full_name,
        role=body.role,
        is_email_verified=body.is_email_verified,
    )
    return respond(UserData(user=UserOut.from_account(account)), "User created successfully", status_code=201)


@router.get("/users", response_model=ApiResponse[UserListData])
def list_users(
    request: Request,
    role: Optional[Role] = None,
    is_email_verified: Optional[bool] = Query(default=None, alias="isEmailVerified"),
    search: Optional[str] = Query(default=None, max_length=100),
    sort_by: Literal["createdAt", "updatedAt", "fullName", "email", "role"] = Query(
        default="createdAt", alias="sortBy"
    ),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    _admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    """List accounts; statistics are computed over the same filter."""
    user_store: UserStore = request.app.state.user_store
    query = UserQuery(
        role=role,
        is_email_verified=is_email_verified,
        search=search or None,
        sort_by=_SORT_COLUMNS[sort_by],
        descending=sort_order == "desc",
        page=page,
        limit=limit,
    )
    users = user_store.list_users(query)
    stats = user_store.statistics(query)
    total = stats["total"]
    total_pages = math.ceil(total / limit) if total else 0
    data = UserListData(
        users=[UserOut.from_account(u) for u in users],
        statistics=UserListStatistics(
            total_users=total,
            verified_users=stats["verified"],
            users=stats["users"],
            admins=stats["admins"],
        ),
        pagination=UserPagination(
            current_page=page,
            total_pages=total_pages,
            total_users=total,
            limit=limit,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )
    return respond(data)


@router.get("/users/statistics", response_model=ApiResponse[UserStatisticsData])
def user_statistics(request: Request, _admin: UserAccount = Depends(require_admin)) -> JSONResponse:
    user_store: UserStore = request.app.state.user_store
    stats = user_store.statistics()
    since = datetime.now(timezone.utc) - timedelta(days=30)
    trends = user_store.registration_trends(since)
    rate = round(stats["verified"] / stats["total"] * 100) if stats["total"] else 0
    data = UserStatisticsData(
        overview=StatisticsOverview(
            total_users=stats["total"],
            verified_users=stats["verified"],
            unverified_users=stats["unverified"],
            users=stats["users"],
            admins=stats["admins"],
        ),
        registration_trends=[TrendPoint(date=day, count=count) for day, count in trends],
        verification_rate=rate,
    )
    return respond(data)


@router.delete("/users/bulk-delete", response_model=ApiResponse[BulkDeleteData])
def bulk_delete_users(
    request: Request,
    body: BulkDeleteRequest,
    admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    if admin.id in body.user_ids:
        raise ValidationError("Cannot delete your own account")
    user_store: UserStore = request.app.state.user_store
    directory_store: DirectoryStore = request.app.state.directory_store
    deleted = user_store.delete_users(set(body.user_ids))
    directory_store.delete_profiles(u.id for u in deleted)
    data = BulkDeleteData(deleted_count=len(deleted), deleted_users=[UserOut.from_account(u) for u in deleted])
    return respond(data, f"Successfully deleted {len(deleted)} users")


# ---------------------------------------------------------------------------
# Single account
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=ApiResponse[UserDetailData])
def get_user(request: Request, user_id: int, _admin: UserAccount = Depends(require_admin)) -> JSONResponse:
    account = _load(request, user_id)
    return respond(UserDetailData(user=UserDetailOut.from_account(account)))


@router.patch("/users/{user_id}", response_model=ApiResponse[UserData])
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdateRequest,
    current_user: UserAccount = Depends(get_current_user),
) -> JSONResponse:
    """Update an account.

    Admins may change any field of any account. A regular user may change
    only their own name, email and password; an email change resets
    verification.
    """
    if not current_user.is_admin:
        if current_user.id != user_id:
            raise ForbiddenError("Not authorized to update this user")
        role_changed = body.role is not None and body.role != current_user.role
        status_changed = (
            body.is_email_verified is not None and body.is_email_verified != current_user.is_email_verified
        )
        if role_changed or status_changed:
            raise ForbiddenError("Not authorized to change role or verification status")
    account = _load(request, user_id)
    service: AccountService = request.app.state.account_service
    service.update_account(
        account,
        full_name=body.full_name,
        email=body.email,
        password=body.password,
        role=body.role,
        is_email_verified=body.is_email_verified,
    )
    return respond(UserData(user=UserOut.from_account(account)), "User updated successfully")


@router.delete("/users/{user_id}")
def delete_user(request: Request, user_id: int, admin: UserAccount = Depends(require_admin)) -> JSONResponse:
    if admin.id == user_id:
        raise ValidationError("Cannot delete your own account")
    user_store: UserStore = request.app.state.user_store
    directory_store: DirectoryStore = request.app.state.directory_store
    if not user_store.delete_user(user_id):
        raise NotFoundError("User not found")
    directory_store.delete_profile(user_id)
    return respond(message="User deleted successfully")


@router.patch("/users/{user_id}/status", response_model=ApiResponse[StatusChangeData])
def update_user_status(
    request: Request,
    user_id: int,
    body: UserStatusRequest,
    _admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    account = _load(request, user_id)
    old_status = account.is_email_verified
    service: AccountService = request.app.state.account_service
    service.set_verified(account, body.is_email_verified)
    state = "verified" if body.is_email_verified else "unverified"
    data = StatusChangeData(
        user=UserOut.from_account(account),
        old_status=old_status,
        new_status=account.is_email_verified,
    )
    return respond(data, f"User email {state} successfully")


@router.patch("/users/{user_id}/role", response_model=ApiResponse[RoleChangeData])
def update_user_role(
    request: Request,
    user_id: int,
    body: UserRoleRequest,
    admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    if admin.id == user_id:
        raise ValidationError("Cannot change your own role")
    account = _load(request, user_id)
    old_role = account.role
    service: AccountService = request.app.state.account_service
    service.update_account(account, role=body.role)
    data = RoleChangeData(user=UserOut.from_account(account), old_role=old_role, new_role=account.role)
    return respond(data, f"User role updated to {account.role.value}")
