import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from src.config import settings
from src.database import init_db
from src.events import event_bus
from src.exceptions import register_exception_handlers
from src.logging_config import configure_logging, set_request_id
from src.notifications import NotificationDispatcher, NotificationService
from src.sweeper import Sweeper, SweeperThread
from src.auth import router as auth_router
from src.routes import router as routes_router
from src.buses import router as buses_router
from src.schedules import router as schedules_router
from src.seats import router as seats_router
from src.bookings import router as bookings_router
from src.payments import router as payments_router
from src.admin import router as admin_router

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

dispatcher = NotificationDispatcher()
notification_service = NotificationService(dispatcher)
sweeper = Sweeper(notification_service)
sweeper_thread = SweeperThread(sweeper)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    notification_service.subscribe(event_bus)
    if settings.SWEEPER_ENABLED:
        sweeper_thread.start()
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield
    sweeper_thread.stop()
    notification_service.unsubscribe(event_bus)
    dispatcher.shutdown()

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Intercity bus seat booking API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)
app.state.sweeper = sweeper

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # React dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

register_exception_handlers(app)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    routes_router,
    prefix=f"{settings.API_V1_STR}/routes",
    tags=["Routes"]
)

app.include_router(
    buses_router,
    prefix=f"{settings.API_V1_STR}/buses",
    tags=["Buses"]
)

app.include_router(
    schedules_router,
    prefix=f"{settings.API_V1_STR}/schedules",
    tags=["Schedules"]
)

app.include_router(
    seats_router,
    prefix=f"{settings.API_V1_STR}/seats",
    tags=["Seat Locks"]
)

app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings"]
)

app.include_router(
    payments_router,
    prefix=f"{settings.API_V1_STR}/payments",
    tags=["Payments"]
)

app.include_router(
    admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
