"""
Modèles SQLAlchemy pour les cours et leurs supports (fichiers stockés sur S3).
"""

import uuid
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base

COURSE_STATUSES = ("draft", "published", "archived")


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_courses_price_positive"),
        CheckConstraint("status IN ('draft', 'published', 'archived')", name="ck_courses_status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    instructor_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="PKR")
    thumbnail_url = Column(String(500), nullable=True)
    category = Column(String(100), nullable=True)
    status = Column(String(20), default="draft")  # draft, published, archived
    max_students = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CourseMaterial(Base):
    """Métadonnées d'un fichier de cours ; le contenu vit dans le bucket S3."""
    __tablename__ = "course_materials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    s3_key = Column(String(500), nullable=False)
    s3_bucket = Column(String(100), nullable=False)
    upload_order = Column(Integer, default=0)
    created_at = Column(DateTime, server_default=func.now())
