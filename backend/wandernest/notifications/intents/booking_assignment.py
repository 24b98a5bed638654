from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from wandernest import models
from wandernest.core.config import settings
from wandernest.utils import email as email_utils

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestSnapshot:
    """Request fields an email needs, detached from any DB session."""

    id: str
    email: str
    tourist_name: Optional[str]
    phone: Optional[str]
    whatsapp: Optional[str]
    contact_method: Optional[str]
    city: str
    dates: Any
    number_of_guests: int
    service_type: str


@dataclass(frozen=True)
class GuideSnapshot:
    id: str
    email: str
    name: Optional[str]
    city: Optional[str]


def snapshot_request(request: models.TouristRequest) -> RequestSnapshot:
    return RequestSnapshot(
        id=request.id,
        email=request.email,
        tourist_name=request.tourist_name,
        phone=request.phone,
        whatsapp=request.whatsapp,
        contact_method=request.contact_method,
        city=request.city,
        dates=request.dates,
        number_of_guests=request.number_of_guests,
        service_type=request.service_type,
    )


def snapshot_guide(student: models.Student) -> GuideSnapshot:
    return GuideSnapshot(id=student.id, email=student.email, name=student.name, city=student.city)


def _format_dates(dates: Any) -> str:
    if isinstance(dates, dict):
        if dates.get("start") and dates.get("end"):
            return f"{dates['start']} to {dates['end']}"
        if dates.get("date"):
            return str(dates["date"])
    return "dates to be confirmed"


def _deliver(recipient: str, subject: str, body: str) -> bool:
    """Send one email; failures are logged and reported as ``False``."""
    try:
        email_utils.send_email(recipient, subject, body)
    except Exception:
        logger.exception("Failed to send '%s' to %s", subject, recipient)
        return False
    return True


def notify_guides_selected(request: RequestSnapshot, guides: Iterable[GuideSnapshot]) -> int:
    """Tell each shortlisted guide a tourist picked them. Returns emails sent."""
    sent = 0
    link = f"{settings.FRONTEND_URL.rstrip('/')}/student/dashboard"
    for guide in guides:
        body = (
            f"Hi {guide.name or 'there'},\n\n"
            f"A traveller in {request.city} has requested you as a guide for "
            f"{_format_dates(request.dates)} ({request.number_of_guests} guest(s)).\n"
            f"The first guide to accept gets the booking: {link}\n"
        )
        if _deliver(guide.email, f"You've been requested as a guide in {request.city}", body):
            sent += 1
    return sent


def notify_booking_accepted(request: RequestSnapshot, guide: GuideSnapshot) -> int:
    """Confirm an accepted booking to both the tourist and the guide."""
    sent = 0
    tourist_body = (
        f"Hi {request.tourist_name or 'there'},\n\n"
        f"{guide.name or 'Your guide'} has accepted your trip in {request.city} "
        f"for {_format_dates(request.dates)}.\n"
        f"You can reach them at {guide.email}.\n"
    )
    if _deliver(request.email, f"Your guide in {request.city} has accepted", tourist_body):
        sent += 1

    contact = [f"Email: {request.email}"]
    if request.phone:
        contact.append(f"Phone: {request.phone}")
    if request.whatsapp:
        contact.append(f"WhatsApp: {request.whatsapp}")
    guide_body = (
        f"Hi {guide.name or 'there'},\n\n"
        f"You are confirmed for a trip in {request.city} on {_format_dates(request.dates)}.\n"
        f"Traveller: {request.tourist_name or 'Tourist'} "
        f"(prefers {request.contact_method or 'email'})\n"
        + "\n".join(contact)
        + "\n"
    )
    if _deliver(guide.email, f"You are confirmed for a trip in {request.city}", guide_body):
        sent += 1
    return sent
