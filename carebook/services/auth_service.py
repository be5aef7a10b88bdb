from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional
import logging

from ..core.config import settings
from ..core.exceptions import (
    AccountLockedError, AuthenticationError, BadRequestError, ConflictError,
)
from ..models.user import User, RefreshToken
from ..core.security import (
    verify_password, get_password_hash, create_token_pair,
    verify_token, hash_token, UserRole, Token, generate_password_reset_token
)
from ..schemas.auth import UserLogin, UserRegister, PasswordResetConfirm

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister, role: UserRole = UserRole.PATIENT) -> User:
        """Register a new user."""
        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise ConflictError("User already exists")

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            full_name=user_data.name,
            phone=user_data.phone,
            role=role,
            is_active=True,
            is_verified=False
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered {role.value} user {new_user.id}")
        return new_user

    def authenticate_user(self, login_data: UserLogin, role: UserRole) -> Token:
        """Authenticate a user of the given role and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user or user.role != role:
            raise AuthenticationError("Invalid credentials")

        # Check account lockout
        if user.locked_until and user.locked_until > datetime.utcnow():
            raise AccountLockedError(
                "Account is temporarily locked due to multiple failed login attempts"
            )

        if not user.password_hash or not verify_password(
            login_data.password, user.password_hash
        ):
            self._handle_failed_login(user)
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        # Reset failed login attempts
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        tokens = self.issue_tokens(user)
        self.db.commit()

        return tokens

    def issue_tokens(self, user: User) -> Token:
        """Create a token pair and store its refresh token. Caller commits."""
        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)
        return tokens

    def refresh_access_token(self, refresh_token: str) -> Token:
        """Refresh access token using refresh token."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != "refresh":
            raise AuthenticationError("Invalid refresh token")

        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise AuthenticationError("Invalid or expired refresh token")

        user = self.db.query(User).filter(
            User.id == token_payload.user_id
        ).first()

        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        # Revoke old refresh token and store new one
        stored_token.is_revoked = True
        tokens = self.issue_tokens(user)

        self.db.commit()

        return tokens

    def logout_user(self, refresh_token: str) -> bool:
        """Logout user by revoking refresh token."""
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token)
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        return True

    def change_password(self, user: User, current_password: str, new_password: str):
        if not user.password_hash or not verify_password(current_password, user.password_hash):
            raise BadRequestError("Current password is incorrect")

        user.password_hash = get_password_hash(new_password)
        self.db.commit()

    def request_password_reset(self, email: str) -> Optional[str]:
        """Generate password reset token."""
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            # Don't reveal if email exists
            return None

        reset_token = generate_password_reset_token()
        user.password_reset_token = reset_token
        user.password_reset_expires = datetime.utcnow() + timedelta(hours=1)

        self.db.commit()

        # TODO: Send email with reset token once an SMTP sender is configured
        logger.info(f"Password reset requested for user {user.id}")
        return reset_token

    def reset_password(self, reset_data: PasswordResetConfirm) -> bool:
        """Reset password using reset token."""
        user = self.db.query(User).filter(
            User.password_reset_token == reset_data.token,
            User.password_reset_expires > datetime.utcnow()
        ).first()

        if not user:
            raise BadRequestError("Invalid or expired reset token")

        user.password_hash = get_password_hash(reset_data.new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.failed_login_attempts = 0
        user.locked_until = None

        # Revoke all refresh tokens
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id
        ).update({"is_revoked": True})

        self.db.commit()
        return True

    def ensure_admin(self, email: str, password: str) -> User:
        """Create the bootstrap admin account if it does not exist."""
        admin = self.db.query(User).filter(User.email == email).first()
        if admin:
            return admin

        admin = User(
            email=email,
            password_hash=get_password_hash(password),
            full_name="Administrator",
            role=UserRole.ADMIN,
            is_active=True,
            is_verified=True
        )
        self.db.add(admin)
        self.db.commit()
        self.db.refresh(admin)

        logger.info(f"Created bootstrap admin {admin.email}")
        return admin

    def _handle_failed_login(self, user: User):
        """Handle failed login attempt."""
        # An expired lock starts a fresh count
        if user.locked_until and user.locked_until <= datetime.utcnow():
            user.failed_login_attempts = 0
            user.locked_until = None

        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        if user.failed_login_attempts >= settings.MAX_FAILED_LOGINS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            logger.warning(f"Locked account {user.id} after repeated failed logins")

        self.db.commit()

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store refresh token in database."""
        token_payload = verify_token(refresh_token)
        if token_payload and token_payload.exp:
            expires_at = datetime.utcfromtimestamp(token_payload.exp)
        else:
            expires_at = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # A user keeps one live refresh token
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            expires_at=expires_at
        ))
