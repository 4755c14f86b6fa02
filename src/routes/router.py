from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from src.auth.dependencies import require_admin
from src.database import get_db
from src.routes.schemas import RouteCreate, RouteListResponse, RouteResponse, RouteUpdate
from src.routes.service import RouteService

router = APIRouter()

@router.get("/", response_model=RouteListResponse)
def get_routes(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    origin: Optional[str] = Query(None, description="Filter by origin city"),
    destination: Optional[str] = Query(None, description="Filter by destination city"),
    db: Session = Depends(get_db)
):
    routes, total = RouteService.get_routes(db, skip=skip, limit=limit, origin=origin, destination=destination)
    return RouteListResponse(routes=routes, total=total)

@router.get("/{route_id}", response_model=RouteResponse)
def get_route(route_id: int, db: Session = Depends(get_db)):
    return RouteService.get_route(db, route_id)

@router.post("/", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
def create_route(route: RouteCreate, db: Session = Depends(get_db), admin_user = Depends(require_admin)):
    """Create a new route (admin only)"""
    return RouteService.create_route(db, route)

@router.put("/{route_id}", response_model=RouteResponse)
def update_route(
    route_id: int,
    route: RouteUpdate,
    db: Session = Depends(get_db),
    admin_user = Depends(require_admin)
):
    return RouteService.update_route(db, route_id, route)

@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_route(route_id: int, db: Session = Depends(get_db), admin_user = Depends(require_admin)):
    RouteService.delete_route(db, route_id)
