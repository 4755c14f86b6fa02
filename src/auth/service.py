from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from src.models import User, Role, UserHasRole, NotificationPreferences
from src.auth.schemas import UserCreate, UserUpdate, NotificationPreferencesUpdate
from src.auth.utils import get_password_hash, verify_password
from src.config import settings
from typing import Optional, List

ADMIN_ROLES = ("admin", "super_admin")

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create_user(db: Session, user: UserCreate, role_name: str = "user") -> User:
        """Create a new user with the given role"""
        hashed_password = get_password_hash(user.password)
        db_user = User(
            name=user.name,
            email=user.email,
            phone=user.phone,
            password=hashed_password
        )

        try:
            db.add(db_user)
            db.flush()

            role = db.query(Role).filter(Role.name == role_name).first()
            if role is None:
                role = Role(name=role_name)
                db.add(role)
                db.flush()
            db.add(UserHasRole(user_id=db_user.id, role_id=role.id))
            db.add(NotificationPreferences(
                user_id=db_user.id,
                reminder_lead_hours=settings.REMINDER_LEAD_HOURS
            ))

            db.commit()
            db.refresh(db_user)
            return db_user

        except IntegrityError:
            db.rollback()
            raise ValueError("Email already registered")

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        user = UserService.get_user_by_email(db, email)
        if not user:
            return None
        if not verify_password(password, user.password):
            return None
        return user

    @staticmethod
    def update_user(db: Session, user_id: int, user_update: UserUpdate) -> Optional[User]:
        """Update user information"""
        db_user = UserService.get_user_by_id(db, user_id)
        if not db_user:
            return None

        update_data = user_update.model_dump(exclude_unset=True)

        if "password" in update_data:
            update_data["password"] = get_password_hash(update_data["password"])

        for field, value in update_data.items():
            setattr(db_user, field, value)

        try:
            db.commit()
            db.refresh(db_user)
            return db_user
        except IntegrityError:
            db.rollback()
            raise ValueError("Email already exists")

    @staticmethod
    def get_user_roles(db: Session, user_id: int) -> List[str]:
        """Get user's role names"""
        rows = (
            db.query(Role.name)
            .join(UserHasRole, UserHasRole.role_id == Role.id)
            .filter(UserHasRole.user_id == user_id)
            .all()
        )
        return [name for (name,) in rows]

    @staticmethod
    def is_admin(db: Session, user_id: int) -> bool:
        return any(role in ADMIN_ROLES for role in UserService.get_user_roles(db, user_id))

    @staticmethod
    def get_notification_preferences(db: Session, user_id: int) -> NotificationPreferences:
        """Get a user's notification preferences, creating defaults on first access"""
        prefs = db.query(NotificationPreferences).filter(NotificationPreferences.user_id == user_id).first()
        if prefs is None:
            prefs = NotificationPreferences(user_id=user_id, reminder_lead_hours=settings.REMINDER_LEAD_HOURS)
            db.add(prefs)
            db.commit()
            db.refresh(prefs)
        return prefs

    @staticmethod
    def update_notification_preferences(
        db: Session,
        user_id: int,
        update: NotificationPreferencesUpdate
    ) -> NotificationPreferences:
        prefs = UserService.get_notification_preferences(db, user_id)
        for field, value in update.model_dump(exclude_unset=True).items():
            setattr(prefs, field, value)
        db.commit()
        db.refresh(prefs)
        return prefs
