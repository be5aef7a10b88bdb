from fastapi import Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from typing import List, Type, TypeVar
import json
import logging

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.exceptions import AuthenticationError, AuthorizationError, RateLimitError
from ..core.security import security, verify_token, UserRole, TokenPayload
from ..models.doctor import Doctor
from ..models.user import User
from ..services.doctor_service import DoctorService

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if token_payload.user_id is None:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.user_id).first()
    if not user:
        raise AuthenticationError("User profile not found")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError("Insufficient permissions")
        return current_user

    return role_checker

get_admin_user = require_role([UserRole.ADMIN])
get_doctor_user = require_role([UserRole.DOCTOR])
get_patient_user = require_role([UserRole.PATIENT])

async def get_current_doctor(
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
) -> Doctor:
    """Practice profile of the authenticated doctor."""
    return DoctorService(db).get_by_user(current_user.id)

# Rate limiting
class RateLimiter:
    """Fixed-window request counter stored in Redis."""

    def __init__(self, scope: str, max_requests: int, window_seconds: int, message: str):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message

    def hit(self, redis_client, identity: str) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        key = f"rate_limit:{self.scope}:{identity}"
        current = redis_client.incr(key)
        if current == 1:
            redis_client.expire(key, self.window_seconds)

        if current > self.max_requests:
            retry_after = redis_client.ttl(key)
            logger.warning(f"Rate limit '{self.scope}' exceeded by {identity}")
            raise RateLimitError(
                self.message,
                retry_after=retry_after if retry_after and retry_after > 0 else self.window_seconds,
            )

    async def __call__(self, request: Request, redis_client=Depends(get_redis)) -> None:
        client_ip = request.client.host if request.client else "unknown"
        self.hit(redis_client, client_ip)

general_rate_limit = RateLimiter(
    "general",
    settings.GENERAL_RATE_LIMIT,
    settings.GENERAL_RATE_WINDOW,
    "Too many requests from this IP, please try again later.",
)
auth_rate_limit = RateLimiter(
    "auth",
    settings.AUTH_RATE_LIMIT,
    settings.AUTH_RATE_WINDOW,
    "Too many authentication attempts, please try again later.",
)
payment_rate_limit = RateLimiter(
    "payment",
    settings.PAYMENT_RATE_LIMIT,
    settings.PAYMENT_RATE_WINDOW,
    "Too many payment attempts, please try again later.",
)
_booking_limiter = RateLimiter(
    "booking",
    settings.BOOKING_RATE_LIMIT,
    settings.BOOKING_RATE_WINDOW,
    "Too many booking attempts, please try again later.",
)

async def booking_rate_limit(
    current_user: User = Depends(get_patient_user),
    redis_client=Depends(get_redis)
) -> User:
    """Booking attempts are counted per user rather than per IP."""
    _booking_limiter.hit(redis_client, f"user:{current_user.id}")
    return current_user

# Multipart form validation
def parse_form(model: Type[ModelT], **fields) -> ModelT:
    """Validate multipart form fields against ``model``.

    Empty strings count as missing and JSON-encoded object fields
    (``address``, ``working_hours``) are decoded first.
    """
    data = {}
    for name, value in fields.items():
        if value is None or value == "":
            continue
        if isinstance(value, str) and value.lstrip().startswith(("{", "[")):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise RequestValidationError([{
                    "type": "value_error",
                    "loc": ("body", name),
                    "msg": f"Invalid {name} format",
                    "input": value,
                }])
        data[name] = value

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
