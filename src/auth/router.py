from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from src.database import get_db
from src.auth.schemas import (
    UserCreate, User, UserUpdate, LoginRequest, AuthResponse, UserProfile,
    NotificationPreferencesSchema, NotificationPreferencesUpdate
)
from src.auth.service import UserService
from src.auth.utils import create_access_token
from src.auth.dependencies import get_current_user

router = APIRouter()

def _profile(db: Session, user) -> UserProfile:
    roles = UserService.get_user_roles(db, user.id)
    return UserProfile(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        created_at=user.created_at,
        updated_at=user.updated_at,
        is_admin=UserService.is_admin(db, user.id),
        roles=roles
    )

@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
def register_user(user: UserCreate, db: Session = Depends(get_db)):
    """Register a new customer account"""
    try:
        return UserService.create_user(db=db, user=user)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

@router.post("/login", response_model=AuthResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email and password for a bearer token"""
    user = UserService.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    profile = _profile(db, user)
    access_token = create_access_token(data={"sub": str(user.id), "is_admin": profile.is_admin})
    return AuthResponse(access_token=access_token, token_type="bearer", user=profile)

@router.get("/me", response_model=UserProfile)
def read_users_me(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get current user profile"""
    return _profile(db, current_user)

@router.put("/me", response_model=User)
def update_user_profile(
    user_update: UserUpdate,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update current user profile"""
    try:
        updated_user = UserService.update_user(db=db, user_id=current_user.id, user_update=user_update)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if not updated_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return updated_user

@router.get("/me/notification-preferences", response_model=NotificationPreferencesSchema)
def get_notification_preferences(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    return UserService.get_notification_preferences(db, current_user.id)

@router.put("/me/notification-preferences", response_model=NotificationPreferencesSchema)
def update_notification_preferences(
    update: NotificationPreferencesUpdate,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update which booking emails the user receives and the reminder lead time"""
    return UserService.update_notification_preferences(db, current_user.id, update)
