"""
Job Model
Database model for try-on generation jobs.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from espelho.core.database import Base


class Job(Base):
    """Try-on generation job model."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True)  # job_xxxx format
    user_id = Column(String, nullable=False, index=True)

    # Inputs. Cleared (not cascaded) when an asset is deleted with keep-history.
    product_id = Column(String, ForeignKey("assets.id", ondelete="SET NULL"), nullable=True)
    model_id = Column(String, ForeignKey("assets.id", ondelete="SET NULL"), nullable=True)
    product_owner_id = Column(String, nullable=True)  # storefront seller attribution
    style = Column(String, nullable=False, default="editorial")
    user_instructions = Column(Text, nullable=True)

    # Status: queued (legacy: pending), processing, completed, failed
    status = Column(String, default="queued", index=True)
    error_message = Column(Text, nullable=True)

    # Result
    result_public_url = Column(String, nullable=True)

    # Gallery flags
    is_favorite = Column(Boolean, default=False)
    is_public = Column(Boolean, default=False)

    # Provenance
    ai_model_used = Column(String, nullable=True)
    prompt_version = Column(String, nullable=True)
    pipeline_version = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    product = relationship("Asset", foreign_keys=[product_id], back_populates="product_jobs")
    model = relationship("Asset", foreign_keys=[model_id], back_populates="model_jobs")
