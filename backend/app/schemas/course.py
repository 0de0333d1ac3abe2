"""
Schémas Pydantic pour les cours.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, field_validator

COURSE_STATUSES = {"draft", "published", "archived"}


def _check_price(v: Optional[Decimal]) -> Decimal:
    if v is None:
        raise ValueError("Le prix est obligatoire.")
    if v < 0:
        raise ValueError("Le prix doit être un nombre positif.")
    return v


def _check_max_students(v: Optional[int]) -> Optional[int]:
    if v is not None and v < 1:
        raise ValueError("Le nombre maximum d'étudiants doit être au moins 1.")
    return v


def _check_currency(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError("La devise doit être un code ISO à 3 lettres.")
    return v


class CourseCreate(BaseModel):
    title: str
    description: str
    price: Decimal
    currency: Optional[str] = None  # défaut : settings.DEFAULT_CURRENCY
    category: Optional[str] = None
    max_students: Optional[int] = None
    thumbnail_url: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le titre et la description sont obligatoires.")
        return v.strip()

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: Decimal) -> Decimal:
        return _check_price(v)

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: Optional[str]) -> Optional[str]:
        return _check_currency(v)

    @field_validator("max_students")
    @classmethod
    def max_students_positive(cls, v: Optional[int]) -> Optional[int]:
        return _check_max_students(v)


class CourseUpdate(BaseModel):
    """Mise à jour partielle : seuls les champs fournis sont modifiés."""
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    max_students: Optional[int] = None
    thumbnail_url: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("Le titre ne peut pas être vide.")
        return v.strip()

    @field_validator("description")
    @classmethod
    def description_not_empty(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("La description ne peut pas être vide.")
        return v.strip()

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: Optional[Decimal]) -> Decimal:
        return _check_price(v)

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("La devise ne peut pas être vide.")
        return _check_currency(v)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> str:
        if v not in COURSE_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {sorted(COURSE_STATUSES)}")
        return v

    @field_validator("max_students")
    @classmethod
    def max_students_positive(cls, v: Optional[int]) -> Optional[int]:
        return _check_max_students(v)


class CourseResponse(BaseModel):
    id: uuid.UUID
    instructor_id: uuid.UUID
    title: str
    description: Optional[str]
    price: Decimal
    currency: str
    category: Optional[str]
    status: str
    max_students: Optional[int]
    thumbnail_url: Optional[str]
    instructor_first_name: Optional[str] = None
    instructor_last_name: Optional[str] = None
    instructor_email: Optional[str] = None
    material_count: int = 0
    enrolled_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MyCourseResponse(CourseResponse):
    """Cours vu depuis le tableau de bord (formateur ou étudiant inscrit)."""
    enrollment_date: Optional[datetime] = None
    enrollment_status: Optional[str] = None


class CourseEnvelope(BaseModel):
    course: CourseResponse


class CourseListResponse(BaseModel):
    courses: List[CourseResponse]


class MyCoursesResponse(BaseModel):
    courses: List[MyCourseResponse]


class CourseDeleteResponse(BaseModel):
    message: str
    deleted_course: CourseResponse
