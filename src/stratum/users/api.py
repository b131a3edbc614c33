"""Users API endpoints.

CRUD plus search, age filtering and statistics. Handlers only translate
between HTTP and the ``UserService``; errors raised by the service are
mapped to responses by the handlers registered in ``stratum.api``.
"""

from typing import Any, Generic, TypeVar

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel

from stratum.errors import ValidationError
from stratum.users.models import CreateUserRequest, UpdateUserRequest, User
from stratum.users.service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])

T = TypeVar("T")


# =============================================================================
# Response Models
# =============================================================================


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for every successful users response."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    username: str
    email: str
    full_name: str
    age: int | None
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            age=user.age,
            created_at=user.created_at.isoformat(),
            updated_at=user.updated_at.isoformat(),
        )


class UserListResponse(BaseModel):
    """A list of users with its length."""

    users: list[UserResponse]
    total: int


def get_user_service(request: Request) -> UserService:
    """Get the user service from app state."""
    return request.app.state.user_service


def _list_response(users: list[User]) -> ApiResponse[UserListResponse]:
    return ApiResponse(
        data=UserListResponse(
            users=[UserResponse.from_user(u) for u in users],
            total=len(users),
        )
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_user(
    payload: CreateUserRequest,
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    """Create a user."""
    user = await service.create_user(payload)
    return ApiResponse(data=UserResponse.from_user(user))


@router.get("", response_model=ApiResponse[UserListResponse])
async def list_users(
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserListResponse]:
    """List all users."""
    return _list_response(await service.get_all_users())


@router.get("/search/username", response_model=ApiResponse[UserResponse])
async def find_by_username(
    username: str = Query(..., min_length=1, max_length=50),
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    """Look up a user by exact username."""
    user = await service.find_by_username(username)
    if user is None:
        raise ValidationError(f"User not found with username: {username}")
    return ApiResponse(data=UserResponse.from_user(user))


@router.get("/filter/age", response_model=ApiResponse[UserListResponse])
async def filter_by_age_range(
    min_age: int = Query(..., ge=1, le=150),
    max_age: int = Query(..., ge=1, le=150),
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserListResponse]:
    """Users whose age is within [min_age, max_age]."""
    return _list_response(await service.get_users_by_age_range(min_age, max_age))


@router.get("/statistics", response_model=ApiResponse[dict[str, Any]])
async def get_statistics(
    service: UserService = Depends(get_user_service),
) -> ApiResponse[dict[str, Any]]:
    """Aggregate user statistics."""
    stats = await service.get_statistics()
    return ApiResponse(data=stats.model_dump())


@router.get("/{user_id}", response_model=ApiResponse[UserResponse])
async def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    """Get a single user by ID."""
    user = await service.get_user(user_id)
    return ApiResponse(data=UserResponse.from_user(user))


@router.put("/{user_id}", response_model=ApiResponse[UserResponse])
async def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    service: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    """Update the fields given in the payload."""
    user = await service.update_user(user_id, payload)
    return ApiResponse(data=UserResponse.from_user(user))


@router.delete("/{user_id}", response_model=ApiResponse[dict[str, Any]])
async def delete_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
) -> ApiResponse[dict[str, Any]]:
    """Delete a user."""
    deleted = await service.delete_user(user_id)
    return ApiResponse(data={"deleted": deleted, "id": user_id})
