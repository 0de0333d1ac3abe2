"""
Service métier pour les inscriptions : statut d'inscription et vérification
d'accès aux contenus d'un cours.
"""

import uuid

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.payment import Payment
from app.schemas.auth import CurrentUser
from app.schemas.enrollment import CourseAccessResponse, EnrollmentDetails, EnrollmentStatusResponse
from app.services.course_service import get_course_or_404


def check_enrollment_status(db: Session, course_id: uuid.UUID, user: CurrentUser) -> EnrollmentStatusResponse:
    """
    Le formateur du cours a toujours accès, sans consulter les inscriptions.
    Pour les autres : accès si une inscription active existe.
    """
    course = get_course_or_404(db, course_id)

    if course.instructor_id == user.id:
        return EnrollmentStatusResponse(has_access=True, is_instructor=True, enrollment_status=None)

    enrollment = db.execute(
        select(Enrollment).where(
            Enrollment.student_id == user.id,
            Enrollment.course_id == course_id,
        )
    ).scalar()

    return EnrollmentStatusResponse(
        has_access=enrollment is not None and enrollment.status == "active",
        is_instructor=False,
        enrollment_status=enrollment.status if enrollment is not None else None,
    )


def verify_course_access(db: Session, course_id: uuid.UUID, user: CurrentUser) -> CourseAccessResponse:
    """
    Variante stricte de check_enrollment_status : l'inscription doit être
    adossée à un paiement complété.
    """
    course = get_course_or_404(db, course_id)
    return _verify_access(db, course, user)


def has_content_access(db: Session, course: Course, user: CurrentUser) -> bool:
    """Décide si l'appelant peut recevoir les URLs de téléchargement du cours."""
    return _verify_access(db, course, user).has_access


def _verify_access(db: Session, course: Course, user: CurrentUser) -> CourseAccessResponse:
    if course.instructor_id == user.id:
        return CourseAccessResponse(
            has_access=True,
            access_type="instructor",
            message="Accès accordé en tant que formateur du cours.",
        )

    row = db.execute(
        select(Enrollment, Payment.status, Payment.completed_at)
        .outerjoin(
            Payment,
            and_(
                Payment.student_id == Enrollment.student_id,
                Payment.course_id == Enrollment.course_id,
            ),
        )
        .where(
            Enrollment.student_id == user.id,
            Enrollment.course_id == course.id,
            Payment.status == "completed",
        )
    ).first()

    if row is None:
        return CourseAccessResponse(has_access=False, access_type="none", message="Cours non acheté.")

    enrollment, payment_status, payment_date = row
    return CourseAccessResponse(
        has_access=enrollment.status == "active",
        access_type="student",
        enrollment_details=EnrollmentDetails(
            status=enrollment.status,
            enrollment_date=enrollment.enrollment_date,
            payment_status=payment_status,
            payment_date=payment_date,
        ),
    )
