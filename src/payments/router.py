import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header
from sqlalchemy.orm import Session

from src.config import settings
from src.database import get_db
from src.events import event_bus
from src.exceptions import Unauthorized
from src.payments.schemas import PaymentEvent, PaymentEventResponse
from src.payments.service import PaymentEventService

router = APIRouter()

def verify_webhook_token(webhook_token: Optional[str] = Header(None, alias="X-Cron-Token")) -> None:
    """Payment callbacks must present the shared secret; without one configured none are accepted"""
    if not settings.CRON_SECRET:
        raise Unauthorized("Payment webhook is not configured")
    if not webhook_token or not secrets.compare_digest(webhook_token, settings.CRON_SECRET):
        raise Unauthorized("Invalid webhook token")

@router.post("/events", response_model=PaymentEventResponse, dependencies=[Depends(verify_webhook_token)])
def receive_payment_event(
    event: PaymentEvent,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Payment provider callback: success confirms, failure cancels"""
    service = PaymentEventService(db)
    response = service.handle(event)
    events = service.drain_events()
    if events:
        background_tasks.add_task(event_bus.publish_all, events)
    return response
