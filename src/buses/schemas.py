from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class BusBase(BaseModel):
    plate_number: str = Field(..., min_length=3, max_length=20)
    bus_type: str = Field(..., min_length=1, max_length=50)
    total_seats: int = Field(..., ge=1, le=80)
    is_active: bool = True

class BusCreate(BusBase):
    pass

class BusUpdate(BaseModel):
    bus_type: Optional[str] = Field(None, min_length=1, max_length=50)
    total_seats: Optional[int] = Field(None, ge=1, le=80)
    is_active: Optional[bool] = None

class BusResponse(BusBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True

class BusListResponse(BaseModel):
    buses: List[BusResponse]
    total: int
