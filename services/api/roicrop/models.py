from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
import uuid
from .db import Base

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def new_id() -> str:
    return str(uuid.uuid4())

class ProcessedImage(Base):
    __tablename__ = "processed_images"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    original_name: Mapped[str] = mapped_column(Text)
    original_url: Mapped[str] = mapped_column(Text)
    processed_url: Mapped[str] = mapped_column(Text)
    original_blob_path: Mapped[str] = mapped_column(Text)
    processed_blob_path: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

class OrphanedBlob(Base):
    """A blob whose row was deleted but whose own deletion failed."""
    __tablename__ = "orphaned_blobs"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    blob_path: Mapped[str] = mapped_column(Text, unique=True)
    image_id: Mapped[str | None] = mapped_column(String, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
