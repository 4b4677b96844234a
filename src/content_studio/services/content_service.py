"""
Content Service - Manages saved documents and images for a user
"""
import logging
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import Optional, List, Dict, Any, Tuple
from fastapi import HTTPException, status

from ..db.base import LIKE_ESCAPE, contains_pattern
from ..db.models import (
    User,
    NotificationSettings,
    GeneratedContent,
    GeneratedImage,
    UserCredits,
    CreditLog,
    Subscription,
    Payment,
)
from .templates import resolve_template_id

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "newest": (GeneratedContent.created_at.desc(), GeneratedContent.id.desc()),
    "oldest": (GeneratedContent.created_at.asc(), GeneratedContent.id.asc()),
    "title": (GeneratedContent.title.asc(),),
    "words": (GeneratedContent.word_count.desc(),),
}


def count_words(text: Optional[str]) -> int:
    """Number of whitespace-separated tokens"""
    return len(text.split()) if text else 0


class ContentService:
    """Service for the current user's documents and images"""

    def __init__(self, db: Session, user: User):
        """
        Initialize ContentService

        Args:
            db: Database session
            user: User object
        """
        self.db = db
        self.user = user

    def _owned_document(self, content_id: int) -> GeneratedContent:
        """Fetch a document, 404 when missing and 403 when owned by someone else"""
        document = self.db.query(GeneratedContent).filter(GeneratedContent.id == content_id).first()
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
        if document.user_id != self.user.id:
            logger.warning(f"User {self.user.id} attempted to access content {content_id} owned by {document.user_id}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        return document

    def save_document(
        self,
        content: str,
        title: Optional[str] = None,
        template_ref: Any = None,
        form_data: Optional[Dict[str, Any]] = None,
    ) -> GeneratedContent:
        if not content or not content.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content is required")

        template_id = resolve_template_id(self.db, template_ref)
        if template_ref and template_id is None:
            logger.warning(f"Template {template_ref!r} not found; saving document without template")

        document = GeneratedContent(
            user_id=self.user.id,
            template_id=template_id,
            title=(title or "").strip() or "Untitled Document",
            content=content,
            form_data=form_data or {},
            word_count=count_words(content),
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Saved document {document.id} for user {self.user.id}")
        return document

    def list_documents(
        self,
        search: Optional[str] = None,
        template_ref: Any = None,
        sort: str = "newest",
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[GeneratedContent], int]:
        """Filtered page of the user's documents plus the total match count"""
        query = self.db.query(GeneratedContent).filter(GeneratedContent.user_id == self.user.id)

        if search:
            pattern = contains_pattern(search)
            query = query.filter(or_(
                GeneratedContent.title.ilike(pattern, escape=LIKE_ESCAPE),
                GeneratedContent.content.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        if template_ref:
            template_id = resolve_template_id(self.db, template_ref)
            if template_id is None:
                return [], 0
            query = query.filter(GeneratedContent.template_id == template_id)

        total = query.count()
        order = SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])
        page = max(1, page)
        limit = max(1, min(limit, 100))
        documents = query.order_by(*order).offset((page - 1) * limit).limit(limit).all()
        return documents, total

    def get_document(self, content_id: int) -> GeneratedContent:
        return self._owned_document(content_id)

    def update_document(
        self,
        content_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> GeneratedContent:
        document = self._owned_document(content_id)
        if title is not None:
            document.title = title.strip() or "Untitled Document"
        if content is not None:
            document.content = content
            document.word_count = count_words(content)
        self.db.commit()
        self.db.refresh(document)
        return document

    def delete_document(self, content_id: int) -> None:
        document = self._owned_document(content_id)
        self.db.delete(document)
        self.db.commit()
        logger.info(f"Deleted document {content_id} for user {self.user.id}")

    def save_image(
        self,
        prompt: str,
        image_url: str,
        title: Optional[str] = None,
        style: Optional[str] = None,
        dimensions: Optional[str] = None,
    ) -> GeneratedImage:
        if not prompt or not image_url:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Prompt and image URL are required"
            )
        image = GeneratedImage(
            user_id=self.user.id,
            title=(title or "").strip() or "Untitled Image",
            prompt=prompt,
            style=style,
            dimensions=dimensions or "1024x1024",
            image_url=image_url,
        )
        self.db.add(image)
        self.db.commit()
        self.db.refresh(image)
        return image

    def list_images(self, limit: int = 100) -> List[GeneratedImage]:
        return (
            self.db.query(GeneratedImage)
            .filter(GeneratedImage.user_id == self.user.id)
            .order_by(GeneratedImage.created_at.desc(), GeneratedImage.id.desc())
            .limit(limit)
            .all()
        )

    def delete_image(self, image_id: int) -> None:
        image = self.db.query(GeneratedImage).filter(GeneratedImage.id == image_id).first()
        if image is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
        if image.user_id != self.user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        self.db.delete(image)
        self.db.commit()

    def stats(self) -> Dict[str, Any]:
        """Dashboard totals for the user"""
        base = self.db.query(GeneratedContent).filter(GeneratedContent.user_id == self.user.id)
        document_count = base.count()
        words = (
            self.db.query(func.coalesce(func.sum(GeneratedContent.word_count), 0))
            .filter(GeneratedContent.user_id == self.user.id)
            .scalar()
        )
        image_count = self.db.query(GeneratedImage).filter(GeneratedImage.user_id == self.user.id).count()
        recent = base.order_by(GeneratedContent.created_at.desc(), GeneratedContent.id.desc()).limit(5).all()
        return {
            "documentCount": document_count,
            "imageCount": image_count,
            "wordsGenerated": int(words or 0),
            "recentDocuments": [serialize_document(d, include_content=False) for d in recent],
        }


def delete_user_data(db: Session, user: User) -> None:
    """Remove every row that belongs to a user, then the user"""
    user_id = user.id
    for model in (
        NotificationSettings,
        GeneratedContent,
        GeneratedImage,
        CreditLog,
        UserCredits,
        Subscription,
        Payment,
    ):
        db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
    # Relationships on the user must reload before the cascade runs
    db.expire_all()
    db.delete(user)
    db.commit()
    logger.info(f"Deleted account and data for user {user_id}")


def serialize_document(document: GeneratedContent, include_content: bool = True) -> Dict[str, Any]:
    data = {
        "id": document.id,
        "title": document.title,
        "templateId": document.template_id,
        "templateSlug": document.template.slug if document.template else None,
        "wordCount": document.word_count,
        "createdAt": document.created_at.isoformat() if document.created_at else None,
    }
    if include_content:
        data["content"] = document.content
        data["formData"] = document.form_data or {}
    return data


def serialize_image(image: GeneratedImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "title": image.title,
        "prompt": image.prompt,
        "style": image.style,
        "dimensions": image.dimensions,
        "imageUrl": image.image_url,
        "createdAt": image.created_at.isoformat() if image.created_at else None,
    }
