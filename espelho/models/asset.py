"""
Asset Model
User-owned images: garments (product), people (model) and generated results.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, Float
from sqlalchemy.orm import relationship

from espelho.core.database import Base


class Asset(Base):
    """Stored image owned by a user. The binary is immutable once uploaded."""

    __tablename__ = "assets"

    id = Column(String, primary_key=True)  # asset_xxxx format
    user_id = Column(String, nullable=False, index=True)

    # product, model, result
    type = Column(String, nullable=False, index=True)

    # Metadata (mutable)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    price = Column(Float, nullable=True)  # products only
    published = Column(Boolean, default=False)  # products only
    is_favorite = Column(Boolean, default=False)

    # Binary reference (immutable)
    storage_path = Column(String, nullable=False)
    public_url = Column(String, nullable=False)
    mime_type = Column(String, default="image/jpeg")

    created_at = Column(DateTime, default=datetime.utcnow)

    product_jobs = relationship("Job", foreign_keys="Job.product_id", back_populates="product")
    model_jobs = relationship("Job", foreign_keys="Job.model_id", back_populates="model")
