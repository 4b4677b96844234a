"""
Billing API routes
Subscription status, plans, checkout, billing portal and Fatora verification
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
import logging

from .db import User, get_db
from .db.models import PaymentProvider
from .auth import get_current_user
from .services.subscription_service import SubscriptionService
from .services.credits_service import get_plans, load_plan_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    provider: str
    plan: str
    priceId: Optional[str] = None


class FatoraVerifyRequest(BaseModel):
    orderId: str
    transactionId: Optional[str] = None


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """FastAPI dependency; overridden in tests"""
    return SubscriptionService(db)


@router.get("/subscription-status")
def subscription_status(
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current subscription, refreshed from the payment provider when possible"""
    return service.get_status(current_user)


@router.get("/plans")
async def list_plans():
    """Available plans and per-action credit costs"""
    plans = [
        {
            "name": name,
            "price": plan.get("price", 0),
            "fatoraPrice": plan.get("fatora_price", 0),
            "credits": plan.get("credits", 0),
            "features": plan.get("features", []),
        }
        for name, plan in get_plans().items()
    ]
    return {"plans": plans, "creditCosts": load_plan_config().get("credit_costs", {})}


@router.post("/checkout")
def create_checkout(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Start a hosted checkout with the chosen provider.

    The plan is only activated later by a verified webhook or the Fatora
    verification step.
    """
    provider = request.provider.lower()
    if provider not in [p.value for p in PaymentProvider]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid provider: {request.provider}. Must be one of: stripe, paddle, fatora"
        )
    try:
        return service.start_checkout(current_user, provider, request.plan, request.priceId)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/portal")
def create_portal_session(
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        url = service.portal_session(current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"url": url}


@router.post("/fatora/verify")
def verify_fatora_payment(
    request: FatoraVerifyRequest,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Confirm a Fatora payment after the redirect back from the payment page"""
    return service.verify_fatora_payment(current_user, request.orderId, request.transactionId)
