from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import (
    MeetingNotFoundError,
    UserNotFoundError,
    create_meeting_from_webhook,
    get_db,
    get_user_by_zoom_id,
    mark_meeting_ended,
)
from .policy import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


class UnknownWebhookEventError(ValueError):
    """The event name has no payload schema."""


def compute_zoom_signature(secret_token: str, timestamp: str, body: str) -> str:
    message = f"v0:{timestamp}:{body}"
    digest = hmac.new(secret_token.encode("utf-8"), message.encode("utf-8"), hashlib.sha256)
    return f"v0={digest.hexdigest()}"


def verify_zoom_signature(
    secret_token: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: str,
) -> bool:
    """Check a `v0=<hex>` signature over `v0:{timestamp}:{body}`. Fails closed."""
    if not secret_token or not timestamp or not signature:
        return False
    expected = compute_zoom_signature(secret_token, timestamp, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class WebhookEnvelope(BaseModel):
    event: str
    payload: dict[str, Any]


class MeetingObject(BaseModel):
    id: Union[int, str]
    uuid: str
    host_id: str
    topic: Optional[str] = None
    type: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    timezone: Optional[str] = None


class MeetingStartedObject(MeetingObject):
    start_time: datetime


class MeetingStartedPayload(BaseModel):
    account_id: str
    object: MeetingStartedObject

    async def process(self, db: AsyncSession) -> None:
        host = await get_user_by_zoom_id(db, self.object.host_id)
        if host is None:
            raise UserNotFoundError("User not found")

        meeting = await create_meeting_from_webhook(
            db,
            user_id=host.user_id,
            zoom_id=str(self.object.id),
            zoom_uuid=self.object.uuid,
            start_time=self.object.start_time,
            topic=self.object.topic,
        )
        logger.info(f"Meeting started: {meeting!r}")


class MeetingEndedPayload(BaseModel):
    account_id: str
    object: MeetingObject

    async def process(self, db: AsyncSession) -> None:
        end_time = self.object.end_time or utcnow()
        meeting = await mark_meeting_ended(db, self.object.uuid, end_time)
        logger.info(f"Meeting ended: {meeting!r}")


class Participant(BaseModel):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    id: Optional[str] = None
    email: Optional[str] = None
    participant_uuid: Optional[str] = None
    join_time: Optional[str] = None
    leave_time: Optional[str] = None
    leave_reason: Optional[str] = None


class ParticipantObject(BaseModel):
    id: Union[int, str]
    uuid: str
    participant: Participant
    topic: Optional[str] = None
    type: Optional[int] = None


class ParticipantJoinedPayload(BaseModel):
    account_id: str
    object: ParticipantObject

    async def process(self, db: AsyncSession) -> None:
        logger.info("Participant joined -- no-op for now")


class ParticipantLeftPayload(BaseModel):
    account_id: str
    object: ParticipantObject

    async def process(self, db: AsyncSession) -> None:
        logger.info("Participant left -- no-op for now")


WebhookPayload = Union[
    MeetingStartedPayload,
    MeetingEndedPayload,
    ParticipantJoinedPayload,
    ParticipantLeftPayload,
]

WEBHOOK_EVENTS: dict[str, type[BaseModel]] = {
    "meeting.started": MeetingStartedPayload,
    "meeting.ended": MeetingEndedPayload,
    "meeting.participant_joined": ParticipantJoinedPayload,
    "meeting.participant_left": ParticipantLeftPayload,
}


def parse_event(envelope: WebhookEnvelope) -> WebhookPayload:
    """
    Decode the payload for the envelope's event name.

    Raises:
        UnknownWebhookEventError: If the event name is not one we handle
        ValidationError: If the payload does not match the event's schema
    """
    payload_cls = WEBHOOK_EVENTS.get(envelope.event)
    if payload_cls is None:
        raise UnknownWebhookEventError(f"Unknown event type: {envelope.event}")
    return payload_cls.model_validate(envelope.payload)


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/zoom")
async def zoom_webhook(
    request: Request,
    x_zm_request_timestamp: Optional[str] = Header(None),
    x_zm_signature: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """
    Webhook endpoint for Zoom meeting events.

    The signature is checked against the raw body before anything is parsed.
    """
    body = (await request.body()).decode("utf-8", errors="replace")

    if not verify_zoom_signature(
        settings.zoom_secret_token, x_zm_request_timestamp, x_zm_signature, body
    ):
        logger.warning("Rejected zoom webhook with invalid signature")
        raise _bad_request("Invalid zoom webhook signature")

    try:
        envelope = WebhookEnvelope.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Invalid zoom webhook body: {body[:500]}")
        raise _bad_request(f"Invalid zoom webhook body: {e.error_count()} error(s)")

    logger.info(f"Processing zoom webhook event: {envelope.event}")

    try:
        event = parse_event(envelope)
    except UnknownWebhookEventError as e:
        logger.error(f"Unhandled zoom webhook event: {envelope.event}")
        raise _bad_request(str(e))
    except ValidationError as e:
        logger.error(f"Invalid payload for {envelope.event}: {envelope.payload}")
        raise _bad_request(f"Invalid zoom webhook payload for {envelope.event}: {e.error_count()} error(s)")

    try:
        await event.process(db)
    except UserNotFoundError as e:
        raise _bad_request(str(e) or "User not found")
    except MeetingNotFoundError as e:
        logger.warning(f"{envelope.event} for unknown meeting: {e}")
        raise _bad_request("Meeting not found")

    return {"status": "ok", "event": envelope.event}
