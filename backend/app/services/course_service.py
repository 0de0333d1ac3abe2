"""
Service métier pour les cours.
Gère la création, la lecture (avec agrégats supports / inscrits), la
modification et la suppression (fichiers S3 compris).
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import and_, distinct, func, select
from sqlalchemy.orm import Session

from app import policy
from app.config import settings
from app.exceptions import NotFoundError
from app.models.course import Course, CourseMaterial
from app.models.enrollment import Enrollment
from app.models.user import User
from app.schemas.auth import CurrentUser
from app.schemas.course import CourseCreate, CourseResponse, CourseUpdate, MyCourseResponse
from app.services.storage_service import StorageService

logger = logging.getLogger(__name__)


def create_course(db: Session, user: CurrentUser, data: CourseCreate) -> CourseResponse:
    """Crée un cours (statut draft) appartenant au formateur appelant."""
    policy.authorize(user, policy.COURSE_CREATE)

    course = Course(
        instructor_id=user.id,
        title=data.title,
        description=data.description,
        price=data.price,
        currency=data.currency or settings.DEFAULT_CURRENCY,
        category=data.category,
        max_students=data.max_students,
        thumbnail_url=data.thumbnail_url,
        status="draft",
    )
    db.add(course)
    db.commit()
    db.refresh(course)

    logger.info("Cours créé : %s (%s) par %s", course.title, course.id, user.id)
    return _to_response(course)


def _aggregated_select():
    """
    SELECT cours + nom du formateur + nombre de supports + nombre d'inscrits actifs.
    Les deux LEFT JOIN multiplient les lignes : on compte donc en DISTINCT.
    """
    return (
        select(
            Course,
            User.first_name,
            User.last_name,
            User.email,
            func.count(distinct(CourseMaterial.id)).label("material_count"),
            func.count(distinct(Enrollment.id)).label("enrolled_count"),
        )
        .outerjoin(User, Course.instructor_id == User.id)
        .outerjoin(CourseMaterial, CourseMaterial.course_id == Course.id)
        .outerjoin(
            Enrollment,
            and_(Enrollment.course_id == Course.id, Enrollment.status == "active"),
        )
        .group_by(Course.id, User.first_name, User.last_name, User.email)
    )


def get_courses(
    db: Session,
    status: str = "published",
    category: Optional[str] = None,
    instructor_id: Optional[uuid.UUID] = None,
) -> List[CourseResponse]:
    """Retourne les cours d'un statut donné (publiés par défaut), du plus récent au plus ancien."""
    stmt = _aggregated_select().where(Course.status == status)
    if category:
        stmt = stmt.where(Course.category == category)
    if instructor_id:
        stmt = stmt.where(Course.instructor_id == instructor_id)
    stmt = stmt.order_by(Course.created_at.desc())

    return [_row_to_response(row) for row in db.execute(stmt).all()]


def get_course(db: Session, course_id: uuid.UUID) -> Optional[CourseResponse]:
    """Retourne un cours avec ses agrégats, ou None s'il n'existe pas."""
    row = db.execute(_aggregated_select().where(Course.id == course_id)).first()
    if row is None:
        return None
    return _row_to_response(row, with_email=True)


def get_course_or_404(db: Session, course_id: uuid.UUID) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError("Cours introuvable.")
    return course


def update_course(db: Session, course_id: uuid.UUID, data: CourseUpdate, user: CurrentUser) -> CourseResponse:
    """
    Met à jour les champs fournis d'un cours. updated_at est toujours rafraîchi.
    Lève ValueError si aucun champ n'est fourni.
    """
    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise ValueError("Aucun champ à mettre à jour.")

    course = get_course_or_404(db, course_id)
    policy.authorize(user, policy.COURSE_UPDATE, course)

    for field, value in update_data.items():
        setattr(course, field, value)
    course.updated_at = datetime.now()

    db.commit()
    db.refresh(course)
    return _to_response(course)


def delete_course(db: Session, storage: StorageService, course_id: uuid.UUID, user: CurrentUser) -> CourseResponse:
    """
    Supprime un cours.

    Étapes :
    1. Supprimer tous les fichiers S3 du cours en un appel groupé (au mieux :
       une erreur S3 est journalisée mais n'empêche pas la suppression)
    2. Supprimer la ligne du cours : les supports, inscriptions et paiements
       partent en cascade (ON DELETE CASCADE)
    """
    course = get_course_or_404(db, course_id)
    policy.authorize(user, policy.COURSE_DELETE, course)

    keys = db.execute(
        select(CourseMaterial.s3_key).where(CourseMaterial.course_id == course_id)
    ).scalars().all()

    if keys:
        try:
            storage.delete_objects(keys)
        except (BotoCoreError, ClientError) as e:
            logger.error("Suppression S3 des supports du cours %s échouée : %s", course_id, e)

    deleted = _to_response(course)
    db.delete(course)
    db.commit()

    logger.info("Cours supprimé : %s (%d fichiers S3)", course_id, len(keys))
    return deleted


def get_my_courses(db: Session, user: CurrentUser) -> List[MyCourseResponse]:
    """
    Formateur : ses cours (tous statuts) avec le nombre d'inscrits actifs.
    Étudiant : les cours auxquels il est inscrit, avec date et statut d'inscription.
    """
    if user.is_instructor:
        rows = db.execute(
            select(Course, func.count(distinct(Enrollment.id)).label("enrolled_count"))
            .outerjoin(
                Enrollment,
                and_(Enrollment.course_id == Course.id, Enrollment.status == "active"),
            )
            .where(Course.instructor_id == user.id)
            .group_by(Course.id)
            .order_by(Course.created_at.desc())
        ).all()
        return [
            MyCourseResponse(**_course_fields(course), enrolled_count=enrolled_count or 0)
            for course, enrolled_count in rows
        ]

    rows = db.execute(
        select(Course, User.first_name, User.last_name, Enrollment.enrollment_date, Enrollment.status)
        .select_from(Enrollment)
        .join(Course, Enrollment.course_id == Course.id)
        .join(User, Course.instructor_id == User.id)
        .where(Enrollment.student_id == user.id)
        .order_by(Enrollment.enrollment_date.desc())
    ).all()
    return [
        MyCourseResponse(
            **_course_fields(course),
            instructor_first_name=first_name,
            instructor_last_name=last_name,
            enrollment_date=enrollment_date,
            enrollment_status=status,
        )
        for course, first_name, last_name, enrollment_date, status in rows
    ]


def _course_fields(course: Course) -> dict:
    return {
        "id": course.id,
        "instructor_id": course.instructor_id,
        "title": course.title,
        "description": course.description,
        "price": course.price,
        "currency": course.currency,
        "category": course.category,
        "status": course.status,
        "max_students": course.max_students,
        "thumbnail_url": course.thumbnail_url,
        "created_at": course.created_at,
        "updated_at": course.updated_at,
    }


def _to_response(course: Course) -> CourseResponse:
    return CourseResponse(**_course_fields(course))


def _row_to_response(row, with_email: bool = False) -> CourseResponse:
    """Construit la réponse depuis une ligne (cours, prénom, nom, email, nb supports, nb inscrits)."""
    course, first_name, last_name, email, material_count, enrolled_count = row
    return CourseResponse(
        **_course_fields(course),
        instructor_first_name=first_name,
        instructor_last_name=last_name,
        instructor_email=email if with_email else None,
        material_count=material_count or 0,
        enrolled_count=enrolled_count or 0,
    )
