"""
Webhook endpoint for turns forwarded by the voice provider.
"""

from fastapi import APIRouter
import structlog

from fincoach.api.dependencies import CorrelationServiceDep
from fincoach.api.schemas import WebhookTurnRequest, WebhookTurnResponse

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/turn", response_model=WebhookTurnResponse)
async def receive_turn(request: WebhookTurnRequest, correlation: CorrelationServiceDep):
    """Correlate a turn to its session and record it.

    An unresolved session is a normal response (``resolved: false`` with a
    message for the client), not an error status.
    """
    outcome = await correlation.handle_turn(
        text=request.text,
        speaker=request.speaker,
        conversation_id=request.conversation_id,
    )
    return WebhookTurnResponse(
        resolved=outcome.resolved,
        session_id=outcome.session.session_id if outcome.session else None,
        appended_to_notebook=outcome.appended_to_notebook,
        message=outcome.message,
    )
