"""
Router pour les cours.
CRUD des cours, supports de cours (upload S3, listing avec URLs présignées,
suppression) et statut d'inscription de l'utilisateur courant.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app import policy
from app.database import get_db
from app.dependencies import get_current_user, require_permission
from app.exceptions import NotFoundError, PermissionDeniedError
from app.schemas.auth import CurrentUser
from app.schemas.course import (
    CourseCreate,
    CourseDeleteResponse,
    CourseEnvelope,
    CourseListResponse,
    CourseUpdate,
    MyCoursesResponse,
)
from app.schemas.enrollment import EnrollmentStatusResponse
from app.schemas.material import MaterialListResponse, MaterialUpload, MaterialUploadResponse
from app.services import course_service, enrollment_service, material_service
from app.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/api/courses", tags=["Cours"])


@router.post("", response_model=CourseEnvelope, status_code=201, summary="Créer un cours")
def create_course(
    data: CourseCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission(policy.COURSE_CREATE)),
):
    """
    Crée un cours en brouillon pour le formateur connecté.
    Titre, description et prix sont obligatoires ; le prix doit être ≥ 0.
    """
    return {"course": course_service.create_course(db, user, data)}


@router.get("", response_model=CourseListResponse, summary="Lister les cours")
def list_courses(
    category: Optional[str] = None,
    instructor_id: Optional[uuid.UUID] = None,
    status: str = "published",
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Retourne les cours publiés (par défaut), filtrables par catégorie et formateur."""
    return {"courses": course_service.get_courses(db, status, category, instructor_id)}


@router.get("/my-courses", response_model=MyCoursesResponse, summary="Mes cours")
def my_courses(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """Formateur : ses cours. Étudiant : les cours auxquels il est inscrit."""
    return {"courses": course_service.get_my_courses(db, user)}


@router.get("/{course_id}", response_model=CourseEnvelope, summary="Détail d'un cours")
def get_course(course_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    course = course_service.get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Cours introuvable.")
    return {"course": course}


@router.put("/{course_id}", response_model=CourseEnvelope, summary="Modifier un cours")
def update_course(
    course_id: uuid.UUID,
    data: CourseUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission(policy.COURSE_UPDATE)),
):
    """Met à jour les champs fournis. Réservé au formateur propriétaire du cours."""
    try:
        return {"course": course_service.update_course(db, course_id, data, user)}
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{course_id}", response_model=CourseDeleteResponse, summary="Supprimer un cours")
def delete_course(
    course_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    user: CurrentUser = Depends(require_permission(policy.COURSE_DELETE)),
):
    """
    Supprime les fichiers S3 du cours puis le cours lui-même.
    Supports, inscriptions et paiements sont supprimés en cascade.
    """
    try:
        deleted = course_service.delete_course(db, storage, course_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {
        "message": "Cours et supports associés supprimés avec succès.",
        "deleted_course": deleted,
    }


@router.post(
    "/{course_id}/materials",
    response_model=MaterialUploadResponse,
    status_code=201,
    summary="Ajouter des supports à un cours",
)
async def upload_materials(
    course_id: uuid.UUID,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    user: CurrentUser = Depends(require_permission(policy.MATERIAL_UPLOAD)),
):
    """
    Envoie jusqu'à 10 fichiers (PDF, vidéos, images, présentations ; 500 Mo max chacun).

    Les fichiers sont traités dans l'ordre. Si l'un d'eux est refusé, la
    réponse est 400 et les fichiers précédents restent enregistrés
    (uploaded_count dans le détail de l'erreur).
    """
    uploads = [
        MaterialUpload(
            filename=f.filename or "fichier",
            content_type=f.content_type or "application/octet-stream",
            content=await f.read(),
        )
        for f in files
    ]

    try:
        materials = await run_in_threadpool(
            material_service.upload_materials, db, storage, course_id, uploads, user
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except material_service.MaterialUploadError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "message": str(e),
                "uploaded_count": len(e.uploaded),
                "materials": [m.model_dump(mode="json") for m in e.uploaded],
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"message": f"{len(materials)} fichier(s) envoyé(s) avec succès.", "materials": materials}


@router.get("/{course_id}/materials", response_model=MaterialListResponse, summary="Lister les supports d'un cours")
def list_materials(
    course_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Retourne les supports dans l'ordre d'upload. download_url (valable 1 heure)
    n'est renseigné que pour le formateur du cours et les étudiants ayant payé.
    """
    try:
        return {"materials": material_service.get_materials(db, storage, course_id, user)}
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{course_id}/materials/{material_id}", summary="Supprimer un support")
def delete_material(
    course_id: uuid.UUID,
    material_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    user: CurrentUser = Depends(require_permission(policy.MATERIAL_DELETE)),
):
    try:
        material_service.delete_material(db, storage, course_id, material_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {"message": "Support supprimé avec succès."}


@router.get(
    "/{course_id}/enrollment-status",
    response_model=EnrollmentStatusResponse,
    summary="Statut d'inscription de l'utilisateur courant",
)
def enrollment_status(course_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    try:
        return enrollment_service.check_enrollment_status(db, course_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
