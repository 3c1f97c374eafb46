"""
Response model: one LLM answer to a prompt.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from codex.core.database import Base


class Response(Base):
    __tablename__ = "responses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    prompt_id = Column(Uuid(as_uuid=True), ForeignKey("prompts.id"), nullable=False, index=True)

    model_name = Column(String, nullable=False)
    content_preview = Column(String, nullable=False)
    content_blob_key = Column(String, nullable=False)
    is_markdown = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    prompt = relationship("Prompt", back_populates="responses")

    def __repr__(self):
        return f"<Response(id={self.id}, prompt_id={self.prompt_id}, model='{self.model_name}')>"
