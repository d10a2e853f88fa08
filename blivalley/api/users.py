"""Authentication and user settings endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from blivalley.api.deps import CurrentUserId, get_user_service
from blivalley.api.schemas import RegisterRequest, SignInRequest
from blivalley.services.user_service import ProfileUpdate, UserService

router = APIRouter(tags=["Users"])


@router.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return await service.register(body.name, body.email, body.password)


@router.post("/api/auth/signin")
async def sign_in(
    body: SignInRequest,
    service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    user, token = await service.authenticate(body.email, body.password)
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "email": user.email,
            "display_name": user.display_name,
            "photo_url": user.photo_url,
        },
    }


@router.get("/api/user/settings")
async def get_settings(
    user_id: CurrentUserId,
    service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return await service.get_settings(user_id)


@router.put("/api/user/settings")
async def update_settings(
    body: ProfileUpdate,
    user_id: CurrentUserId,
    service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return await service.update_settings(user_id, body)
