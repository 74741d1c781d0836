from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.payment_gateway import PaymentGatewayBase, get_payment_gateway
from app.services.webhook_reconciler import WebhookReconciler

router = APIRouter()


@router.post(
    "/razorpay",
    summary="Receive Razorpay webhooks",
    responses={
        400: {"description": "Malformed payload or missing signature"},
        401: {"description": "Invalid signature"},
        500: {"description": "Processing failed, the gateway will retry"},
    },
)
async def handle_razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    x_razorpay_event_id: str | None = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
) -> JSONResponse:
    """Apply a subscription lifecycle event sent by the gateway.

    The signature is checked against the raw body exactly as received.
    """
    payload = await request.body()
    outcome = WebhookReconciler(db, gateway).process(
        payload, x_razorpay_signature, x_razorpay_event_id
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
