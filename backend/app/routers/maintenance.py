from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import verify_cron_secret
from app.core.database import get_db
from app.schemas.subscription import CleanupResponse
from app.services.orphan_cleanup import cleanup_orphaned_subscriptions
from app.services.payment_gateway import PaymentGatewayBase, get_payment_gateway

router = APIRouter()


@router.post(
    "/cleanup-orphaned-subscriptions",
    response_model=CleanupResponse,
    summary="Cancel subscriptions abandoned at checkout",
    responses={401: {"description": "Missing or invalid cron secret"}},
    dependencies=[Depends(verify_cron_secret)],
)
async def cleanup_orphans(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
) -> CleanupResponse:
    """Entry point for an external scheduler; the worker runs the same job hourly."""
    cleaned = cleanup_orphaned_subscriptions(db, gateway)
    return CleanupResponse(
        cleaned_count=cleaned,
        message=f"Cleaned up {cleaned} orphaned subscriptions",
    )
