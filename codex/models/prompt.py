"""
Prompt model.

Prompt text lives in the blob store under content_blob_key; the row keeps a
short preview for listings.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from codex.core.database import Base


class Prompt(Base):
    __tablename__ = "prompts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=True)
    content_preview = Column(String, nullable=False)
    content_blob_key = Column(String, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    tags = Column(String, nullable=True)  # comma-separated

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="prompts")
    responses = relationship("Response", back_populates="prompt")

    def __repr__(self):
        return f"<Prompt(id={self.id}, user_id={self.user_id}, title='{self.title}')>"
