import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.exceptions import SignatureError
from coursestore.services.payment_gateways import PaymentGateways, get_payment_gateways
from coursestore.services.reconciliation import handle_provider_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


async def raw_body(request: Request) -> bytes:
    # signatures are computed over the exact bytes sent
    return await request.body()


@router.post("/webhook/{provider}")
def provider_webhook(
    provider: str,
    request: Request,
    payload: bytes = Depends(raw_body),
    session: Session = Depends(get_session),
    gateways: PaymentGateways = Depends(get_payment_gateways),
):
    """
    Provider notifications.

    400 when the signature does not verify, 503 when the database fails so
    the provider redelivers, 200 for everything else.
    """
    gateway = gateways.for_provider(provider)
    signature = request.headers.get(gateway.signature_header) if gateway.signature_header else None

    try:
        return handle_provider_webhook(
            session,
            provider=provider,
            payload=payload,
            signature=signature,
            gateways=gateways,
        )
    except SignatureError as exc:
        logger.warning("Rejected %s webhook: %s", provider, exc.message)
        return JSONResponse(status_code=400, content={"status": "fail", "message": exc.message})
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Database failure while handling %s webhook", provider)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Temporarily unavailable, retry later"},
        )
