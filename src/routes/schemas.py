from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

class RouteBase(BaseModel):
    """Intercity route between two cities"""
    route_no: int = Field(..., ge=1)
    origin: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    distance_km: Optional[Decimal] = Field(None, gt=0)
    duration_minutes: Optional[int] = Field(None, gt=0)

class RouteCreate(RouteBase):
    @model_validator(mode="after")
    def validate_endpoints(self):
        if self.origin.strip().lower() == self.destination.strip().lower():
            raise ValueError("Origin and destination must differ")
        return self

class RouteUpdate(BaseModel):
    origin: Optional[str] = Field(None, min_length=1, max_length=255)
    destination: Optional[str] = Field(None, min_length=1, max_length=255)
    distance_km: Optional[Decimal] = Field(None, gt=0)
    duration_minutes: Optional[int] = Field(None, gt=0)

class RouteResponse(RouteBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RouteListResponse(BaseModel):
    routes: List[RouteResponse]
    total: int
