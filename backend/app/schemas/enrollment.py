"""
Schémas Pydantic pour le statut d'inscription et la vérification d'accès.
"""

from datetime import datetime
from typing import Optional

from app.schemas.auth import CamelModel


class EnrollmentStatusResponse(CamelModel):
    has_access: bool
    is_instructor: bool
    enrollment_status: Optional[str] = None


class EnrollmentDetails(CamelModel):
    status: str
    enrollment_date: Optional[datetime] = None
    payment_status: Optional[str] = None
    payment_date: Optional[datetime] = None


class CourseAccessResponse(CamelModel):
    has_access: bool
    access_type: str  # instructor, student, none
    message: Optional[str] = None
    enrollment_details: Optional[EnrollmentDetails] = None
