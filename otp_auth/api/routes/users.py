"""Account management routes for authenticated users and admins."""

from fastapi import APIRouter, Depends, Response, status

from otp_auth.api import deps
from otp_auth.db.models.user import ROLE_ADMIN, User
from otp_auth.schemas.auth import DeleteAccount, StatusChange
from otp_auth.schemas.common import Message
from otp_auth.services.auth import AuthService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/delete-account", response_model=Message, status_code=status.HTTP_201_CREATED)
async def delete_account(
    payload: DeleteAccount,
    response: Response,
    user: User = Depends(deps.get_active_user),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> Message:
    """Soft-delete the caller's account and sign them out."""

    await auth_service.delete_account(user, payload.reason)
    deps.clear_auth_cookies(response)
    return Message(message="ok")


@router.put("/{user_id}/status", response_model=Message)
async def change_status(
    user_id: int,
    payload: StatusChange,
    _admin: User = Depends(deps.require_roles(ROLE_ADMIN)),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> Message:
    """Activate or deactivate an account (admin only)."""

    await auth_service.change_status(user_id, payload.status)
    return Message(message="ok")
