from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..core.exceptions import BadRequestError, NotFoundError
from ..core.security import UserRole
from ..models.user import User
from ..schemas.user import ProfileUpdate

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, db: Session):
        self.db = db

    def update_profile(self, user: User, data: ProfileUpdate, image_url: Optional[str] = None) -> User:
        if data.name is not None:
            user.full_name = data.name
        if data.phone is not None:
            user.phone = data.phone
        if data.address is not None:
            user.address = data.address.model_dump()
        if data.dob is not None:
            user.date_of_birth = data.dob
        if data.gender is not None:
            user.gender = data.gender
        if image_url:
            user.profile_image_url = image_url

        self.db.commit()
        self.db.refresh(user)
        return user

    def list_users(self, skip: int = 0, limit: int = 10, role: Optional[UserRole] = None) -> List[User]:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        return query.order_by(User.id).offset(skip).limit(limit).all()

    def set_active(self, user_id: int, is_active: bool, actor: User) -> User:
        """Activate or deactivate an account (admin only)."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        if user.id == actor.id and not is_active:
            raise BadRequestError("You cannot deactivate your own account")

        user.is_active = is_active
        self.db.commit()

        logger.info(f"User {user.id} {'activated' if is_active else 'deactivated'} by admin {actor.id}")
        return user
