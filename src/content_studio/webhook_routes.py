"""
Payment provider webhooks
Each endpoint verifies the provider signature before applying the event
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
import json
import logging

from .services.subscription_service import SubscriptionService
from .billing_routes import get_subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _apply(service: SubscriptionService, provider: str, gateway, payload: dict) -> dict:
    try:
        event = gateway.parse_webhook_event(payload)
        subscription = service.apply_event(event)
    except ValueError as e:
        logger.warning(f"Rejected {provider} webhook: {e}")
        service.db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"{provider.capitalize()} webhook processing failed: {e}", exc_info=True)
        service.db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Webhook processing failed: {str(e)}"
        )
    return {"received": True, "processed": subscription is not None}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Stripe webhook endpoint with signature verification"""
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header")

    body = await request.body()
    gateway = service.gateway_factory("stripe")
    if not gateway.verify_webhook_signature(body, signature):
        logger.warning("Stripe webhook signature verification failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature")

    return _apply(service, "stripe", gateway, json.loads(body.decode()))


@router.post("/paddle")
async def paddle_webhook(
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Paddle Billing (JSON) and classic (form-encoded) webhooks"""
    body = await request.body()
    gateway = service.gateway_factory("paddle")
    if not gateway.verify_webhook_signature(body, request.headers.get("paddle-signature")):
        logger.warning("Paddle webhook signature verification failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = gateway.decode_payload(body, request.headers.get("content-type", ""))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")
    return _apply(service, "paddle", gateway, payload)


@router.post("/fatora")
async def fatora_webhook(
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Fatora payment callback"""
    body = await request.body()
    gateway = service.gateway_factory("fatora")
    if not gateway.verify_webhook_signature(body, request.headers.get("x-fatora-signature")):
        logger.warning("Fatora webhook signature verification failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(body.decode())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")
    return _apply(service, "fatora", gateway, payload)
