"""Inbound messaging webhook."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_notification_gateway
from ..core.exceptions import AmbiguousContactError, ContactNotMatchedError
from ..gateways import NotificationGateway
from ..schemas.webhook import InboundMessage, InboundMessageResponse, InboundMessageStatus
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])


@router.post("/inbound-message", response_model=InboundMessageResponse)
async def receive_inbound_message(
    message: InboundMessage,
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> JSONResponse:
    """
    Route a client message to the booking it belongs to.

    Always answers 200 so the messaging provider does not redeliver;
    the ``status`` field says whether the message was attached.
    """
    service = BookingService(db, gateway)
    try:
        booking = await service.resolve_booking_for_contact(message.sender)
    except ContactNotMatchedError:
        logger.info("Inbound message from unknown contact", extra={"sender": message.sender})
        response_data = InboundMessageResponse(status=InboundMessageStatus.UNMATCHED)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
    except AmbiguousContactError as e:
        response_data = InboundMessageResponse(status=InboundMessageStatus.AMBIGUOUS)
        logger.warning(
            "Inbound message left unattached, contact is ambiguous",
            extra={"sender": message.sender, "references": e.booking_references}
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    reference = booking.reference_number
    evidence = await service.attach_evidence(
        booking.id,
        media_reference=message.media_url,
        content_type=message.media_content_type,
        raw_text=message.body,
        sender=message.sender,
    )
    response_data = InboundMessageResponse(
        status=InboundMessageStatus.ATTACHED,
        booking_reference=reference,
        evidence_id=str(evidence.id),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
