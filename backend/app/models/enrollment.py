"""
Modèle SQLAlchemy pour les inscriptions étudiant ↔ cours.
Une inscription n'est créée (ou réactivée) que par un paiement complété.
"""

import uuid
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base

ENROLLMENT_STATUSES = ("active", "suspended", "completed")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        CheckConstraint("status IN ('active', 'suspended', 'completed')", name="ck_enrollments_status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default="active")  # active, suspended, completed
    enrollment_date = Column(DateTime, server_default=func.now())
