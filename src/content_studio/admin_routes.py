"""
Admin panel API routes
Protected endpoints for analytics, users, content moderation, billing and settings
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import Dict, Any, Optional
from pydantic import BaseModel
import logging

from .db import get_db, User, GeneratedContent, UserCredits, Subscription
from .db.base import LIKE_ESCAPE, contains_pattern
from .auth import require_admin
from .auth_routes import serialize_user
from .services.analytics_service import AnalyticsService
from .services.credits_service import CreditsService
from .services.settings_service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

BILLING_SORT_COLUMNS = {
    "created_at": Subscription.created_at,
    "updated_at": Subscription.updated_at,
    "plan": Subscription.plan,
    "status": Subscription.status,
    "payment_provider": Subscription.payment_provider,
    "price": Subscription.price,
    "user_id": Subscription.user_id,
    "current_period_end": Subscription.current_period_end,
}


# ============================================================================
# Request Models
# ============================================================================

class ToggleAdminRequest(BaseModel):
    """isAdmin is the user's current state; it is flipped"""
    userId: int
    isAdmin: bool


class DeleteContentRequest(BaseModel):
    id: int


class CreditAdjustmentRequest(BaseModel):
    amount: int
    reason: Optional[str] = None


def _iso(value):
    return value.isoformat() if value else None


def _serialize_admin_content(document: GeneratedContent, email: Optional[str], include_content: bool = False) -> Dict[str, Any]:
    data = {
        "id": document.id,
        "title": document.title,
        "userId": document.user_id,
        "userEmail": email,
        "templateId": document.template_id,
        "wordCount": document.word_count,
        "createdAt": _iso(document.created_at),
    }
    if include_content:
        data["content"] = document.content
    else:
        data["preview"] = (document.content or "")[:200]
    return data


# ============================================================================
# Analytics
# ============================================================================

@router.get("/analytics")
async def get_analytics(
    timeRange: str = Query("yearly"),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db).analytics(timeRange)


@router.get("/metrics")
async def get_metrics(
    timeRange: str = Query("yearly"),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db).metrics(timeRange)


@router.get("/dashboard-metrics")
async def get_dashboard_metrics(
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db).dashboard_metrics()


# ============================================================================
# Users
# ============================================================================

@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Paginated user list

    **Admin Access Required**
    """
    query = db.query(User)
    if search:
        pattern = contains_pattern(search)
        query = query.filter(or_(
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
            User.first_name.ilike(pattern, escape=LIKE_ESCAPE),
            User.last_name.ilike(pattern, escape=LIKE_ESCAPE),
        ))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    result = []
    for user in users:
        data = serialize_user(user)
        data["created_at"] = _iso(user.created_at)
        data["plan"] = user.subscription.plan if user.subscription else "Free"
        data["credits"] = (
            {"total": user.credits.total_credits, "used": user.credits.used_credits}
            if user.credits else None
        )
        result.append(data)

    return {"users": result, "count": len(result), "total": total}


@router.post("/toggle-admin")
async def toggle_admin(
    request: ToggleAdminRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Flip a user's admin flag

    **Admin Access Required**
    """
    if request.userId == admin_user.id and request.isAdmin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove your own admin access"
        )

    target_user = db.query(User).filter(User.id == request.userId).first()
    if not target_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {request.userId} not found"
        )

    target_user.is_admin = not request.isAdmin
    db.commit()
    db.refresh(target_user)

    action = "granted" if target_user.is_admin else "revoked"
    logger.info(f"Admin {admin_user.id} {action} admin access for user {target_user.id} ({target_user.email})")

    return {"success": True, "user": serialize_user(target_user)}


@router.get("/recent-users")
async def recent_users(
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(5).all()
    return {"users": [dict(serialize_user(u), created_at=_iso(u.created_at)) for u in users]}


# ============================================================================
# Content moderation
# ============================================================================

@router.get("/recent-content")
async def recent_content(
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(GeneratedContent, User.email)
        .outerjoin(User, User.id == GeneratedContent.user_id)
        .order_by(GeneratedContent.created_at.desc(), GeneratedContent.id.desc())
        .limit(5)
        .all()
    )
    return {"content": [_serialize_admin_content(document, email) for document, email in rows]}


@router.get("/content")
async def list_content(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(GeneratedContent, User.email).outerjoin(User, User.id == GeneratedContent.user_id)
    if search:
        pattern = contains_pattern(search)
        query = query.filter(or_(
            GeneratedContent.title.ilike(pattern, escape=LIKE_ESCAPE),
            GeneratedContent.content.ilike(pattern, escape=LIKE_ESCAPE),
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
        ))

    total = query.count()
    rows = (
        query.order_by(GeneratedContent.created_at.desc(), GeneratedContent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "content": [_serialize_admin_content(document, email) for document, email in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def _delete_content(db: Session, content_id: int, admin_user: User) -> Dict[str, Any]:
    document = db.query(GeneratedContent).filter(GeneratedContent.id == content_id).first()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    db.delete(document)
    db.commit()
    logger.info(f"Admin {admin_user.id} deleted content {content_id} owned by user {document.user_id}")
    return {"success": True}


@router.post("/content/delete")
async def delete_content_post(
    request: DeleteContentRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _delete_content(db, request.id, admin_user)


@router.get("/content/{content_id}")
async def get_content(
    content_id: int,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    row = (
        db.query(GeneratedContent, User.email)
        .outerjoin(User, User.id == GeneratedContent.user_id)
        .filter(GeneratedContent.id == content_id)
        .first()
    )
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    document, email = row
    return {"content": _serialize_admin_content(document, email, include_content=True)}


@router.delete("/content/{content_id}")
async def delete_content(
    content_id: int,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _delete_content(db, content_id, admin_user)


# ============================================================================
# Billing
# ============================================================================

def _group_counts(db: Session, column, label: str):
    return [
        {label: value, "count": count}
        for value, count in db.query(column, func.count(Subscription.id)).group_by(column).all()
    ]


@router.get("/billing")
async def list_billing(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    plan: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    provider: Optional[str] = Query(None),
    sortBy: str = Query("updated_at"),
    sortOrder: str = Query("desc", pattern="^(asc|desc)$"),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Subscriptions with credits and summary statistics

    Filters set to "all" are ignored.
    """
    if sortBy not in BILLING_SORT_COLUMNS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid sortBy: {sortBy}. Must be one of: {', '.join(BILLING_SORT_COLUMNS)}"
        )

    query = db.query(Subscription, User.email).outerjoin(User, User.id == Subscription.user_id)
    if search:
        pattern = contains_pattern(search)
        query = query.filter(or_(
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
            Subscription.stripe_customer_id.ilike(pattern, escape=LIKE_ESCAPE),
            Subscription.paddle_customer_id.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if plan and plan != "all":
        query = query.filter(Subscription.plan == plan)
    if status_filter and status_filter != "all":
        query = query.filter(Subscription.status == status_filter)
    if provider and provider != "all":
        query = query.filter(Subscription.payment_provider == provider)

    total = query.count()
    column = BILLING_SORT_COLUMNS[sortBy]
    order = column.asc() if sortOrder == "asc" else column.desc()
    rows = query.order_by(order, Subscription.id.desc()).offset((page - 1) * limit).limit(limit).all()

    user_ids = [subscription.user_id for subscription, _ in rows]
    credits_by_user = {
        c.user_id: c for c in db.query(UserCredits).filter(UserCredits.user_id.in_(user_ids)).all()
    } if user_ids else {}

    subscriptions = []
    for subscription, email in rows:
        credits = credits_by_user.get(subscription.user_id)
        subscriptions.append({
            "id": subscription.id,
            "userId": subscription.user_id,
            "userEmail": email,
            "plan": subscription.plan,
            "status": subscription.status,
            "provider": subscription.payment_provider,
            "price": subscription.price,
            "stripeCustomerId": subscription.stripe_customer_id,
            "paddleCustomerId": subscription.paddle_customer_id,
            "currentPeriodEnd": _iso(subscription.current_period_end),
            "createdAt": _iso(subscription.created_at),
            "updatedAt": _iso(subscription.updated_at),
            "credits": {
                "total": credits.total_credits,
                "used": credits.used_credits,
                "remaining": credits.remaining,
            } if credits else None,
        })

    total_credits, used_credits = db.query(
        func.coalesce(func.sum(UserCredits.total_credits), 0),
        func.coalesce(func.sum(UserCredits.used_credits), 0),
    ).one()

    return {
        "subscriptions": subscriptions,
        "total": total,
        "page": page,
        "limit": limit,
        "planStats": _group_counts(db, Subscription.plan, "plan"),
        "providerStats": _group_counts(db, Subscription.payment_provider, "payment_provider"),
        "statusStats": _group_counts(db, Subscription.status, "status"),
        "creditStats": {"total_credits": int(total_credits), "used_credits": int(used_credits)},
    }


@router.post("/billing/{user_id}/credits")
async def adjust_credits(
    user_id: int,
    request: CreditAdjustmentRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Manual credit adjustment; negative amounts remove credits"""
    if not db.query(User.id).filter(User.id == user_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")
    if request.amount == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Amount must not be zero")

    reason = request.reason or f"Manual adjustment by admin {admin_user.id}"
    credits = CreditsService(db).adjust(user_id, request.amount, reason)
    logger.info(f"Admin {admin_user.id} adjusted credits for user {user_id} by {request.amount}")
    return {
        "success": True,
        "totalCredits": credits.total_credits,
        "usedCredits": credits.used_credits,
        "remainingCredits": credits.remaining,
    }


# ============================================================================
# Settings
# ============================================================================

@router.get("/settings")
async def get_settings(
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return SettingsService(db).get()


@router.post("/settings")
async def save_settings(
    request: Request,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        settings = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid settings data")
    try:
        SettingsService(db).save(settings)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.info(f"Admin {admin_user.id} saved settings")
    return {"success": True}
