from sqlalchemy import select, delete
from sqlalchemy.orm import Session
from .models import ProcessedImage, OrphanedBlob, utcnow


def save_processed_image(db: Session, *, original_name: str, original_url: str, processed_url: str,
                         original_blob_path: str, processed_blob_path: str) -> ProcessedImage:
    row = ProcessedImage(
        original_name=original_name,
        original_url=original_url,
        processed_url=processed_url,
        original_blob_path=original_blob_path,
        processed_blob_path=processed_blob_path,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_processed_images(db: Session) -> list[ProcessedImage]:
    stmt = select(ProcessedImage).order_by(ProcessedImage.created_at.desc(), ProcessedImage.id)
    return list(db.execute(stmt).scalars().all())


def get_processed_image(db: Session, image_id: str) -> ProcessedImage | None:
    return db.get(ProcessedImage, image_id)


def delete_processed_images(db: Session, image_ids: list[str]) -> int:
    if not image_ids:
        return 0
    result = db.execute(delete(ProcessedImage).where(ProcessedImage.id.in_(image_ids)))
    db.commit()
    return result.rowcount


def record_orphan(db: Session, *, blob_path: str, image_id: str | None, error: str) -> OrphanedBlob:
    orphan = db.execute(select(OrphanedBlob).where(OrphanedBlob.blob_path == blob_path)).scalar_one_or_none()
    if orphan is None:
        orphan = OrphanedBlob(blob_path=blob_path, image_id=image_id, last_error=error, attempts=1)
        db.add(orphan)
    else:
        orphan.attempts += 1
        orphan.last_error = error
    db.commit()
    return orphan


def list_orphans(db: Session) -> list[OrphanedBlob]:
    return list(db.execute(select(OrphanedBlob).order_by(OrphanedBlob.created_at)).scalars().all())


def mark_orphan_failed(db: Session, orphan: OrphanedBlob, error: str):
    orphan.attempts += 1
    orphan.last_error = error
    orphan.updated_at = utcnow()
    db.commit()


def drop_orphan(db: Session, orphan: OrphanedBlob):
    db.delete(orphan)
    db.commit()
