from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

class UserBase(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None

class UserCreate(UserBase):
    password: str = Field(..., min_length=6, max_length=72)

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)

class User(UserBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserProfile(User):
    is_admin: bool
    roles: List[str] = []

class AuthResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserProfile

class NotificationPreferencesSchema(BaseModel):
    email_booking_confirmation: bool = True
    email_trip_reminders: bool = True
    email_cancellations: bool = True
    reminder_lead_hours: int = Field(24, ge=1, le=168)

    class Config:
        from_attributes = True

class NotificationPreferencesUpdate(BaseModel):
    email_booking_confirmation: Optional[bool] = None
    email_trip_reminders: Optional[bool] = None
    email_cancellations: Optional[bool] = None
    reminder_lead_hours: Optional[int] = Field(None, ge=1, le=168)

# Who is performing a booking transition
class Actor(BaseModel):
    user_id: Optional[int] = None
    is_admin: bool = False
    is_system: bool = False
    guest_email: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None and not self.is_system and not self.guest_email

    @classmethod
    def system(cls) -> "Actor":
        return cls(is_system=True)
