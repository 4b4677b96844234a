"""
Template, generated document and generated image models
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from ..base import Base, JSONType


class Template(Base):
    """Catalogue row for a generation template, seeded from templates.yaml"""
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, unique=True, nullable=False)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    documents = relationship("GeneratedContent", back_populates="template")


class GeneratedContent(Base):
    """A saved document produced by the generator"""
    __tablename__ = "generated_content"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("templates.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String, nullable=False, default="Untitled Document")
    content = Column(Text, nullable=False)
    form_data = Column(JSONType, nullable=True)
    word_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    template = relationship("Template", back_populates="documents")
    user = relationship("User")

    __table_args__ = (
        Index("idx_generated_content_user_created", "user_id", "created_at"),
    )


class GeneratedImage(Base):
    """A saved generated image (URL only, the bytes stay with the provider)"""
    __tablename__ = "generated_images"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False, default="Untitled Image")
    prompt = Column(Text, nullable=False)
    style = Column(String, nullable=True)
    dimensions = Column(String, nullable=False, default="1024x1024")
    image_url = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
