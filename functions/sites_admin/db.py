"""
Index record storage for Postgres (via SQLAlchemy) and an in-memory test implementation.

An index record asserts that a stored object is still in use by a user's
site. Objects under a user's storage prefix with no record are orphans.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, Float, Integer, String, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class DbClient(Protocol):
    """Interface for index record access."""

    def add_image_record(
        self,
        user_id: str,
        path: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> "ImageRecord":
        ...

    def list_image_records(self, user_id: str) -> list["ImageRecord"]:
        ...

    def get_image_record(self, user_id: str, path: str) -> Optional["ImageRecord"]:
        ...

    def delete_image_record(self, user_id: str, path: str) -> int:
        ...


@dataclass
class ImageRecord:
    record_id: str
    user_id: str
    path: str
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "path": self.path,
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
            "created_at": self.created_at,
        }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.images: Dict[str, ImageRecord] = {}

    def add_image_record(
        self,
        user_id: str,
        path: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> ImageRecord:
        record = ImageRecord(
            record_id=uuid.uuid4().hex,
            user_id=user_id,
            path=path,
            filename=filename,
            content_type=content_type,
            size=size,
        )
        self.images[record.record_id] = record
        return record

    def list_image_records(self, user_id: str) -> list[ImageRecord]:
        return [
            record for record in self.images.values() if record.user_id == user_id
        ]

    def get_image_record(self, user_id: str, path: str) -> Optional[ImageRecord]:
        for record in self.images.values():
            if record.user_id == user_id and record.path == path:
                return record
        return None

    def delete_image_record(self, user_id: str, path: str) -> int:
        doomed = [
            record_id
            for record_id, record in self.images.items()
            if record.user_id == user_id and record.path == path
        ]
        for record_id in doomed:
            del self.images[record_id]
        return len(doomed)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.images.clear()


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_image_record(self, row: "ImageRow") -> ImageRecord:
        return ImageRecord(
            record_id=row.record_id,
            user_id=row.user_id,
            path=row.path,
            filename=row.filename,
            content_type=row.content_type,
            size=row.size,
            created_at=row.created_at,
        )

    def add_image_record(
        self,
        user_id: str,
        path: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> ImageRecord:
        with self.Session() as session:
            row = ImageRow(
                record_id=uuid.uuid4().hex,
                user_id=user_id,
                path=path,
                filename=filename,
                content_type=content_type,
                size=size,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_image_record(row)

    def list_image_records(self, user_id: str) -> list[ImageRecord]:
        with self.Session() as session:
            stmt = (
                select(ImageRow)
                .where(ImageRow.user_id == user_id)
                .order_by(ImageRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_image_record(row) for row in rows]

    def get_image_record(self, user_id: str, path: str) -> Optional[ImageRecord]:
        with self.Session() as session:
            stmt = (
                select(ImageRow)
                .where(ImageRow.user_id == user_id, ImageRow.path == path)
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._to_image_record(row)

    def delete_image_record(self, user_id: str, path: str) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(ImageRow).where(
                    ImageRow.user_id == user_id, ImageRow.path == path
                )
            )
            session.commit()
            return result.rowcount or 0


Base = declarative_base()


class ImageRow(Base):
    __tablename__ = "user_images"

    record_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    path = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=True)
    content_type = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    created_at = Column(Float, nullable=False)
