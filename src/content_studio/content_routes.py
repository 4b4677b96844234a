"""
Content API routes
Generation, saved documents, images, templates, credits and dashboard stats
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Union
import logging

from .db import User, get_db
from .auth import get_current_user
from .exceptions import TemplateNotFoundError, ProviderError, ProviderNotConfiguredError
from .services.content_service import ContentService, serialize_document, serialize_image
from .services.credits_service import CreditsService
from .services.llm_service import LLMService, get_llm_service, ALLOWED_IMAGE_SIZES, DEFAULT_IMAGE_SIZE
from .services import templates as template_catalogue
from .services.subscription_service import SubscriptionService
from .billing_routes import get_subscription_service

logger = logging.getLogger(__name__)

ai_router = APIRouter(prefix="/api/ai", tags=["generation"])
content_router = APIRouter(prefix="/api/content", tags=["content"])
images_router = APIRouter(prefix="/api/images", tags=["images"])
templates_router = APIRouter(prefix="/api/templates", tags=["templates"])
credits_router = APIRouter(prefix="/api/credits", tags=["credits"])
dashboard_router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class GenerateRequest(BaseModel):
    prompt: Optional[str] = None
    templateId: Optional[str] = None
    formData: Dict[str, Any] = Field(default_factory=dict)


class GenerateImageRequest(BaseModel):
    prompt: str
    style: Optional[str] = None
    dimensions: Optional[str] = DEFAULT_IMAGE_SIZE


class SaveContentRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    templateId: Optional[Union[int, str]] = None
    formData: Dict[str, Any] = Field(default_factory=dict)


class UpdateContentRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class SaveImageRequest(BaseModel):
    prompt: Optional[str] = None
    imageUrl: Optional[str] = None
    title: Optional[str] = None
    style: Optional[str] = None
    dimensions: Optional[str] = None


class PurchaseCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0)
    paymentId: str = Field(..., min_length=1)


# Generation

@ai_router.post("/generate")
def generate_content(
    request: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
):
    """
    Generate text from a template form or a free prompt.

    Credits are charged before the model call and refunded if it fails.
    """
    template = None
    prompt = (request.prompt or "").strip()
    form_data = dict(request.formData or {})

    if request.templateId:
        try:
            template = template_catalogue.get_template(request.templateId)
        except TemplateNotFoundError:
            # Free-form tools send their own prompt with an unregistered id
            logger.info(f"Unregistered template id {request.templateId}; using the prompt as sent")

    if template and not prompt:
        try:
            missing = template_catalogue.validate_form(template, form_data)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        if missing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Please fill in all required fields", "missingFields": missing}
            )
        prompt = template_catalogue.build_prompt(template, form_data)

    if not prompt:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")

    action = template_catalogue.credit_action_for(template)
    credits = CreditsService(db)
    description = f"Generated content with {template.title}" if template else "Generated content"
    credits.use(current_user.id, action, description)

    try:
        content = llm.generate_text(prompt)
    except (ProviderError, ProviderNotConfiguredError):
        credits.refund(current_user.id, action)
        raise

    return {
        "content": content,
        "templateId": request.templateId,
        "formData": form_data,
        "suggestedTitle": template_catalogue.document_title_for(template, form_data) if template else None,
        "creditsRemaining": credits.remaining(current_user.id),
    }


@ai_router.post("/generate-image")
def generate_image(
    request: GenerateImageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
):
    """Generate one image; costs image_generation credits"""
    if not request.prompt or not request.prompt.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")

    dimensions = request.dimensions or DEFAULT_IMAGE_SIZE
    if dimensions not in ALLOWED_IMAGE_SIZES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid dimensions. Must be one of: {', '.join(ALLOWED_IMAGE_SIZES)}"
        )

    credits = CreditsService(db)
    credits.use(current_user.id, "image_generation", "Generated image")

    try:
        result = llm.generate_image(request.prompt.strip(), request.style, dimensions)
    except (ProviderError, ProviderNotConfiguredError):
        credits.refund(current_user.id, "image_generation")
        raise

    return {
        "imageUrl": result["image_url"],
        "prompt": request.prompt,
        "style": request.style,
        "dimensions": dimensions,
        "creditsRemaining": credits.remaining(current_user.id),
    }


# Documents

@content_router.post("/save")
async def save_content(
    request: SaveContentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = ContentService(db, current_user).save_document(
        content=request.content or "",
        title=request.title,
        template_ref=request.templateId,
        form_data=request.formData,
    )
    return {"success": True, "content": serialize_document(document)}


@content_router.get("/list")
async def list_content(
    search: Optional[str] = Query(None),
    template: Optional[str] = Query(None),
    sort: str = Query("newest", pattern="^(newest|oldest|title|words)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    documents, total = ContentService(db, current_user).list_documents(
        search=search, template_ref=template, sort=sort, page=page, limit=limit
    )
    return {
        "content": [serialize_document(d) for d in documents],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": (total + limit - 1) // limit,
    }


@content_router.delete("/delete")
async def delete_content_by_query(
    id: int = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ContentService(db, current_user).delete_document(id)
    return {"success": True}


@content_router.get("/{content_id}")
async def get_content(
    content_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = ContentService(db, current_user).get_document(content_id)
    return {"content": serialize_document(document)}


@content_router.put("/{content_id}")
async def update_content(
    content_id: int,
    request: UpdateContentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = ContentService(db, current_user).update_document(
        content_id, title=request.title, content=request.content
    )
    return {"success": True, "content": serialize_document(document)}


@content_router.delete("/{content_id}")
async def delete_content(
    content_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ContentService(db, current_user).delete_document(content_id)
    return {"success": True}


# Images

@images_router.post("/save")
async def save_image(
    request: SaveImageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    image = ContentService(db, current_user).save_image(
        prompt=request.prompt or "",
        image_url=request.imageUrl or "",
        title=request.title,
        style=request.style,
        dimensions=request.dimensions,
    )
    return {"success": True, "image": serialize_image(image)}


@images_router.get("/list")
async def list_images(
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    images = ContentService(db, current_user).list_images(limit=limit)
    return {"images": [serialize_image(i) for i in images]}


@images_router.delete("/{image_id}")
async def delete_image(
    image_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ContentService(db, current_user).delete_image(image_id)
    return {"success": True}


# Templates

@templates_router.get("")
async def list_templates(category: Optional[str] = Query(None)):
    return {
        "templates": [t.to_dict(include_fields=False) for t in template_catalogue.list_templates(category)]
    }


@templates_router.get("/get-by-title")
async def get_template_by_title(
    title: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    row = template_catalogue.get_by_title(db, title)
    if row is None:
        return {"template": None}
    return {
        "template": {
            "id": row.id,
            "slug": row.slug,
            "title": row.title,
            "category": row.category,
            "description": row.description,
        }
    }


@templates_router.get("/{slug}")
async def get_template(slug: str):
    try:
        template = template_catalogue.get_template(slug)
    except TemplateNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Template not found: {slug}")
    return {"template": template.to_dict()}


# Credits

@credits_router.get("")
async def get_credits(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CreditsService(db).status(current_user.id)


@credits_router.get("/history")
async def get_credit_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entries = CreditsService(db).history(current_user.id, limit=limit)
    return {
        "history": [
            {
                "id": e.id,
                "actionType": e.action_type,
                "creditsUsed": e.credits_used,
                "description": e.description,
                "createdAt": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ]
    }


@credits_router.post("/purchase")
def purchase_credits(
    request: PurchaseCreditsRequest,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Credit packs are paid through Stripe; paymentId is the PaymentIntent id"""
    new_total, remaining = service.confirm_credit_purchase(current_user, request.paymentId, request.amount)
    return {"success": True, "totalCredits": new_total, "remainingCredits": remaining}


# Dashboard

@dashboard_router.get("/stats")
async def dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stats = ContentService(db, current_user).stats()
    stats["credits"] = CreditsService(db).status(current_user.id)
    return stats
