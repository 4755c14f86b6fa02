from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple

from src.database import atomic
from src.exceptions import InvalidStateTransition, NotFound, ValidationError
from src.models import Route, Schedule
from src.routes.schemas import RouteCreate, RouteUpdate

class RouteService:
    @staticmethod
    def get_route(db: Session, route_id: int) -> Route:
        route = db.query(Route).filter(Route.id == route_id).first()
        if route is None:
            raise NotFound(f"Route with ID {route_id} not found")
        return route

    @staticmethod
    def get_routes(
        db: Session,
        skip: int = 0,
        limit: int = 50,
        origin: Optional[str] = None,
        destination: Optional[str] = None
    ) -> Tuple[List[Route], int]:
        """Get routes, optionally filtered by city"""
        query = db.query(Route)
        if origin:
            query = query.filter(Route.origin.ilike(f"%{origin}%"))
        if destination:
            query = query.filter(Route.destination.ilike(f"%{destination}%"))

        total = query.count()
        routes = query.order_by(Route.route_no).offset(skip).limit(limit).all()
        return routes, total

    @staticmethod
    def create_route(db: Session, data: RouteCreate) -> Route:
        route = Route(**data.model_dump())
        try:
            with atomic(db):
                db.add(route)
        except IntegrityError:
            raise ValidationError(f"Route number {data.route_no} already exists")
        db.refresh(route)
        return route

    @staticmethod
    def update_route(db: Session, route_id: int, data: RouteUpdate) -> Route:
        route = RouteService.get_route(db, route_id)
        with atomic(db):
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(route, field, value)
        db.refresh(route)
        return route

    @staticmethod
    def delete_route(db: Session, route_id: int) -> None:
        route = RouteService.get_route(db, route_id)
        if db.query(Schedule).filter(Schedule.route_id == route_id).count():
            raise InvalidStateTransition("Route still has schedules")
        with atomic(db):
            db.delete(route)
