"""
Tests unitaires pour le service des cours.
Vérifient la validation du prix, la propriété du cours et la suppression
groupée des fichiers S3.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from app.exceptions import NotFoundError, PermissionDeniedError
from app.models.course import Course
from app.schemas.auth import CurrentUser
from app.schemas.course import CourseCreate, CourseUpdate
from app.services.course_service import (
    create_course,
    delete_course,
    get_course,
    get_courses,
    get_my_courses,
    update_course,
)


# --- Helpers ---

def make_course(instructor_id, **kwargs) -> Course:
    return Course(
        id=kwargs.get("id", uuid.uuid4()),
        instructor_id=instructor_id,
        title=kwargs.get("title", "Python avancé"),
        description=kwargs.get("description", "Décorateurs, générateurs, asyncio"),
        price=kwargs.get("price", Decimal("49.99")),
        currency=kwargs.get("currency", "USD"),
        category=kwargs.get("category", "programmation"),
        status=kwargs.get("status", "published"),
        created_at=datetime.now(),
        updated_at=datetime.now(),
    )


def course_body(**kwargs) -> dict:
    body = {"title": "Python avancé", "description": "Décorateurs et générateurs", "price": "49.99"}
    body.update(kwargs)
    return body


# ============================================================
# Validation
# ============================================================

def test_prix_negatif_refuse():
    with pytest.raises(ValidationError, match="positif"):
        CourseCreate(**course_body(price=-1))


def test_prix_zero_accepte():
    assert CourseCreate(**course_body(price=0)).price == Decimal("0")


def test_titre_vide_refuse():
    with pytest.raises(ValidationError):
        CourseCreate(**course_body(title="   "))


def test_prix_manquant_refuse():
    body = course_body()
    del body["price"]
    with pytest.raises(ValidationError):
        CourseCreate(**body)


def test_devise_normalisee():
    assert CourseCreate(**course_body(currency="usd")).currency == "USD"


def test_statut_invalide_refuse():
    with pytest.raises(ValidationError):
        CourseUpdate(status="deleted")


def test_update_max_students_zero_refuse():
    """Même règle qu'à la création : au moins 1 étudiant."""
    with pytest.raises(ValidationError, match="au moins 1"):
        CourseUpdate(max_students=0)


def test_update_max_students_valide():
    assert CourseUpdate(max_students=30).max_students == 30


def test_update_description_nulle_refusee():
    with pytest.raises(ValidationError, match="description"):
        CourseUpdate(description=None)


def test_update_description_vide_refusee():
    with pytest.raises(ValidationError):
        CourseUpdate(description="   ")


# ============================================================
# create_course
# ============================================================

def test_creation_valeurs_par_defaut(db, instructor, fake_refresh):
    """Un cours créé est en brouillon, devise PKR par défaut, appartient à l'appelant."""
    db.refresh.side_effect = fake_refresh

    result = create_course(db, instructor, CourseCreate(**course_body()))

    created = db.add.call_args[0][0]
    assert created.status == "draft"
    assert created.currency == "PKR"
    assert created.instructor_id == instructor.id
    db.commit.assert_called_once()
    assert result.price == Decimal("49.99")
    assert result.material_count == 0


def test_creation_refusee_pour_un_etudiant(db, student):
    with pytest.raises(PermissionDeniedError):
        create_course(db, student, CourseCreate(**course_body()))
    db.add.assert_not_called()


# ============================================================
# update_course
# ============================================================

def test_update_sans_champ(db, instructor):
    with pytest.raises(ValueError, match="Aucun champ"):
        update_course(db, uuid.uuid4(), CourseUpdate(), instructor)
    db.commit.assert_not_called()


def test_update_cours_introuvable(db, instructor):
    db.get.return_value = None
    with pytest.raises(NotFoundError):
        update_course(db, uuid.uuid4(), CourseUpdate(title="Nouveau"), instructor)


def test_update_par_un_autre_formateur(db, instructor):
    """Un formateur ne peut pas modifier le cours d'un autre."""
    course = make_course(uuid.uuid4())
    db.get.return_value = course

    with pytest.raises(PermissionDeniedError):
        update_course(db, course.id, CourseUpdate(title="Piraté"), instructor)

    assert course.title == "Python avancé"
    db.commit.assert_not_called()


def test_update_partiel(db, instructor):
    """Seuls les champs fournis changent ; updated_at est rafraîchi."""
    course = make_course(instructor.id, status="draft")
    before = course.updated_at
    db.get.return_value = course

    result = update_course(db, course.id, CourseUpdate(status="published"), instructor)

    assert course.status == "published"
    assert course.title == "Python avancé"
    assert course.updated_at >= before
    assert result.status == "published"
    db.commit.assert_called_once()


# ============================================================
# delete_course
# ============================================================

def test_delete_un_seul_appel_s3(db, storage, instructor):
    """3 supports → un seul appel groupé contenant les 3 clés, puis suppression du cours."""
    course = make_course(instructor.id)
    db.get.return_value = course
    keys = [f"courses/{course.id}/materials/{i}.pdf" for i in range(3)]
    db.execute.return_value.scalars.return_value.all.return_value = keys

    deleted = delete_course(db, storage, course.id, instructor)

    storage.delete_objects.assert_called_once_with(keys)
    db.delete.assert_called_once_with(course)
    db.commit.assert_called_once()
    assert deleted.id == course.id


def test_delete_erreur_s3_ne_bloque_pas(db, storage, instructor):
    """Une erreur S3 est journalisée ; le cours est quand même supprimé."""
    course = make_course(instructor.id)
    db.get.return_value = course
    db.execute.return_value.scalars.return_value.all.return_value = ["k1"]
    storage.delete_objects.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "refusé"}}, "DeleteObjects"
    )

    delete_course(db, storage, course.id, instructor)

    db.delete.assert_called_once_with(course)
    db.commit.assert_called_once()


def test_delete_sans_supports(db, storage, instructor):
    course = make_course(instructor.id)
    db.get.return_value = course
    db.execute.return_value.scalars.return_value.all.return_value = []

    delete_course(db, storage, course.id, instructor)

    storage.delete_objects.assert_not_called()
    db.delete.assert_called_once_with(course)


def test_delete_par_un_autre_formateur(db, storage, instructor):
    course = make_course(uuid.uuid4())
    db.get.return_value = course

    with pytest.raises(PermissionDeniedError):
        delete_course(db, storage, course.id, instructor)

    storage.delete_objects.assert_not_called()
    db.delete.assert_not_called()


def test_delete_cours_introuvable(db, storage, instructor):
    db.get.return_value = None
    with pytest.raises(NotFoundError):
        delete_course(db, storage, uuid.uuid4(), instructor)


# ============================================================
# Lecture
# ============================================================

def test_get_course_introuvable(db):
    db.execute.return_value.first.return_value = None
    assert get_course(db, uuid.uuid4()) is None


def test_get_course_avec_agregats(db):
    course = make_course(uuid.uuid4())
    db.execute.return_value.first.return_value = (course, "Grace", "Hopper", "grace@example.com", 3, 12)

    result = get_course(db, course.id)

    assert result.instructor_first_name == "Grace"
    assert result.instructor_email == "grace@example.com"
    assert result.material_count == 3
    assert result.enrolled_count == 12


def test_get_courses_liste(db):
    """Le listing n'expose pas l'email du formateur ; les agrégats nuls valent 0."""
    c1, c2 = make_course(uuid.uuid4()), make_course(uuid.uuid4(), title="SQL")
    db.execute.return_value.all.return_value = [
        (c1, "Grace", "Hopper", "grace@example.com", 2, 5),
        (c2, "Alan", "Turing", "alan@example.com", None, None),
    ]

    result = get_courses(db)

    assert [c.title for c in result] == ["Python avancé", "SQL"]
    assert result[0].instructor_email is None
    assert result[1].material_count == 0
    assert result[1].enrolled_count == 0


def test_my_courses_formateur(db, instructor):
    course = make_course(instructor.id)
    db.execute.return_value.all.return_value = [(course, 4)]

    result = get_my_courses(db, instructor)

    assert len(result) == 1
    assert result[0].enrolled_count == 4


def test_my_courses_etudiant(db, student):
    course = make_course(uuid.uuid4())
    enrolled_at = datetime(2026, 1, 15, 10, 0)
    db.execute.return_value.all.return_value = [(course, "Grace", "Hopper", enrolled_at, "active")]

    result = get_my_courses(db, student)

    assert result[0].instructor_last_name == "Hopper"
    assert result[0].enrollment_date == enrolled_at
    assert result[0].enrollment_status == "active"
