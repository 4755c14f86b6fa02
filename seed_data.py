#!/usr/bin/env python3

import sys
from datetime import timedelta
from decimal import Decimal

from src.auth.schemas import UserCreate
from src.auth.service import UserService
from src.database import SessionLocal, init_db
from src.models import Bus, Route
from src.schedules.schemas import ScheduleCreate
from src.schedules.service import ScheduleService
from src.utils import utcnow

ROUTES = [
    # route_no, origin, destination, distance_km, duration_minutes
    (1, "Ho Chi Minh City", "Da Lat", Decimal("308"), 420),
    (2, "Ho Chi Minh City", "Nha Trang", Decimal("430"), 540),
    (3, "Hanoi", "Sapa", Decimal("315"), 330),
    (4, "Da Nang", "Hue", Decimal("95"), 150),
]

BUSES = [
    ("51B-10001", "Sleeper", 34),
    ("51B-10002", "Limousine", 22),
    ("29B-20001", "Sleeper", 40),
    ("43B-30001", "Seater", 45),
]

# departure hour (UTC) and price per seat for each route
DEPARTURES = {
    1: [(14, Decimal("280000")), (22, Decimal("300000"))],
    2: [(13, Decimal("350000"))],
    3: [(0, Decimal("320000")), (14, Decimal("320000"))],
    4: [(1, Decimal("120000"))],
}

def create_seed_data(days: int = 7) -> bool:
    init_db()
    db = SessionLocal()

    try:
        print("🚌 Creating seed data for the bus booking platform...")

        print("Creating users...")
        if not UserService.get_user_by_email(db, "admin@busbooking.vn"):
            UserService.create_user(
                db,
                UserCreate(name="Operator Admin", email="admin@busbooking.vn", password="Admin123!"),
                role_name="admin"
            )
        if not UserService.get_user_by_email(db, "customer@busbooking.vn"):
            UserService.create_user(
                db,
                UserCreate(name="Demo Customer", email="customer@busbooking.vn", phone="0901234567", password="Demo123!")
            )

        print("Creating routes and buses...")
        routes = {}
        for route_no, origin, destination, distance_km, duration in ROUTES:
            route = db.query(Route).filter(Route.route_no == route_no).first()
            if route is None:
                route = Route(
                    route_no=route_no, origin=origin, destination=destination,
                    distance_km=distance_km, duration_minutes=duration
                )
                db.add(route)
            routes[route_no] = route

        buses = []
        for plate_number, bus_type, seats in BUSES:
            bus = db.query(Bus).filter(Bus.plate_number == plate_number).first()
            if bus is None:
                bus = Bus(plate_number=plate_number, bus_type=bus_type, total_seats=seats)
                db.add(bus)
            buses.append(bus)
        db.commit()

        print(f"Creating schedules for the next {days} days...")
        schedules = ScheduleService(db)
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        created = 0
        for day in range(1, days + 1):
            for index, (route_no, departures) in enumerate(DEPARTURES.items()):
                route = routes[route_no]
                for hour, price in departures:
                    departure_at = today + timedelta(days=day, hours=hour)
                    schedules.create(ScheduleCreate(
                        route_id=route.id,
                        bus_id=buses[index % len(buses)].id,
                        departure_at=departure_at,
                        arrival_at=departure_at + timedelta(minutes=route.duration_minutes),
                        booking_closes_at=departure_at - timedelta(minutes=30),
                        price_per_seat=price
                    ))
                    created += 1

        print(f"✅ Seed data created: {len(routes)} routes, {len(buses)} buses, {created} schedules")
        print("🔑 Admin login: admin@busbooking.vn / Admin123!")
        print("🔑 Customer login: customer@busbooking.vn / Demo123!")
        return True

    except Exception as e:
        print(f"❌ Error during seeding: {e}")
        db.rollback()
        return False

    finally:
        db.close()

if __name__ == "__main__":
    success = create_seed_data()
    sys.exit(0 if success else 1)
