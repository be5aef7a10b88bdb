from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user, get_current_user_token, auth_rate_limit
from ...services.auth_service import AuthService
from ...schemas.auth import (
    AuthTokenResponse, ChangePassword, PasswordReset, PasswordResetConfirm,
    ProfileResponse, RefreshTokenRequest, UserResponse,
)
from ...schemas.common import MessageResponse
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/refresh", response_model=AuthTokenResponse)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Rotate a refresh token and issue a new access token."""
    tokens = AuthService(db).refresh_access_token(refresh_data.refresh_token)
    return AuthTokenResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )

@router.post("/logout", response_model=MessageResponse)
async def logout(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    success = AuthService(db).logout_user(refresh_data.refresh_token)
    return MessageResponse(message="Successfully logged out" if success else "Logout completed")

@router.get("/me", response_model=ProfileResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return ProfileResponse(userData=UserResponse.model_validate(current_user))

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    AuthService(db).change_password(
        current_user, password_data.current_password, password_data.new_password
    )
    return MessageResponse(message="Password changed successfully")

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def forgot_password(
    reset_data: PasswordReset,
    db: Session = Depends(get_db)
):
    """Request password reset."""
    AuthService(db).request_password_reset(reset_data.email)
    return MessageResponse(message="If the email exists, a password reset link has been sent")

@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    reset_data: PasswordResetConfirm,
    db: Session = Depends(get_db)
):
    """Reset password using reset token."""
    AuthService(db).reset_password(reset_data)
    return MessageResponse(message="Password reset successfully")

@router.post("/verify-token")
async def verify_token_endpoint(
    current_user: User = Depends(get_current_user),
    token_payload = Depends(get_current_user_token)
):
    """Verify the token belongs to an active account."""
    return {
        "success": True,
        "valid": True,
        "user_id": current_user.id,
        "email": current_user.email,
        "role": current_user.role.value,
        "expires": token_payload.exp
    }
