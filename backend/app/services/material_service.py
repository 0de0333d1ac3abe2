"""
Service métier pour les supports de cours (fichiers S3 + métadonnées en BDD).

Upload séquentiel par défaut : chaque fichier est validé, envoyé sur S3 puis
enregistré et commité avant de passer au suivant. Un échec au fichier N
laisse en place les N-1 premiers supports.

Avec MATERIAL_UPLOAD_ATOMIC, l'upload est tout-ou-rien : tous les fichiers
sont validés puis envoyés, les lignes ne sont commitées que si tout a réussi,
sinon les objets déjà envoyés sont supprimés.
"""

import logging
import uuid
from typing import List, Sequence

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import policy
from app.config import settings
from app.exceptions import NotFoundError
from app.models.course import CourseMaterial
from app.schemas.auth import CurrentUser
from app.schemas.material import MaterialResponse, MaterialUpload
from app.services.course_service import get_course_or_404
from app.services.enrollment_service import has_content_access
from app.services.storage_service import StorageService

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/jpeg",
    "image/png",
}


class MaterialUploadError(ValueError):
    """Échec de validation d'un fichier ; `uploaded` liste les supports déjà enregistrés."""

    def __init__(self, message: str, uploaded: Sequence[MaterialResponse] = ()):
        super().__init__(message)
        self.uploaded = list(uploaded)


def validate_file(upload: MaterialUpload) -> None:
    """Lève ValueError si le type MIME ou la taille du fichier n'est pas accepté."""
    if upload.content_type not in ALLOWED_MIME_TYPES:
        raise ValueError(
            f"{upload.filename} : type de fichier non autorisé. "
            "Seuls les PDF, vidéos, images et présentations sont acceptés."
        )
    if upload.size > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise ValueError(
            f"{upload.filename} : fichier trop volumineux. Taille maximale : {settings.MAX_UPLOAD_SIZE_MB} Mo."
        )


def upload_materials(
    db: Session,
    storage: StorageService,
    course_id: uuid.UUID,
    files: List[MaterialUpload],
    user: CurrentUser,
) -> List[MaterialResponse]:
    if not files:
        raise ValueError("Aucun fichier envoyé.")
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise ValueError(f"Trop de fichiers. Maximum : {settings.MAX_UPLOAD_FILES} par envoi.")

    course = get_course_or_404(db, course_id)
    policy.authorize(user, policy.MATERIAL_UPLOAD, course)

    if settings.MATERIAL_UPLOAD_ATOMIC:
        return _upload_all_or_nothing(db, storage, course_id, files)
    return _upload_sequential(db, storage, course_id, files)


def _new_material(course_id: uuid.UUID, upload: MaterialUpload, key: str, bucket: str, order: int) -> CourseMaterial:
    return CourseMaterial(
        course_id=course_id,
        file_name=upload.filename,
        file_type=upload.content_type,
        file_size=upload.size,
        s3_key=key,
        s3_bucket=bucket,
        upload_order=order,
    )


def _upload_sequential(
    db: Session,
    storage: StorageService,
    course_id: uuid.UUID,
    files: List[MaterialUpload],
) -> List[MaterialResponse]:
    uploaded: List[MaterialResponse] = []

    for order, upload in enumerate(files):
        try:
            validate_file(upload)
        except ValueError as e:
            logger.warning(
                "Upload interrompu au fichier %d/%d du cours %s : %s",
                order + 1, len(files), course_id, e,
            )
            raise MaterialUploadError(str(e), uploaded) from e

        key = storage.upload_material(course_id, upload.filename, upload.content, upload.content_type)

        material = _new_material(course_id, upload, key, storage.bucket, order)
        db.add(material)
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            # La ligne n'existe pas : l'objet S3 serait orphelin
            storage.delete_object(key)
            raise
        db.refresh(material)
        uploaded.append(MaterialResponse.model_validate(material))

    logger.info("%d support(s) ajouté(s) au cours %s", len(uploaded), course_id)
    return uploaded


def _upload_all_or_nothing(
    db: Session,
    storage: StorageService,
    course_id: uuid.UUID,
    files: List[MaterialUpload],
) -> List[MaterialResponse]:
    for upload in files:
        try:
            validate_file(upload)
        except ValueError as e:
            raise MaterialUploadError(str(e)) from e

    staged_keys: List[str] = []
    try:
        for upload in files:
            staged_keys.append(
                storage.upload_material(course_id, upload.filename, upload.content, upload.content_type)
            )

        materials = [
            _new_material(course_id, upload, key, storage.bucket, order)
            for order, (upload, key) in enumerate(zip(files, staged_keys))
        ]
        db.add_all(materials)
        db.commit()
    except Exception:
        db.rollback()
        if staged_keys:
            logger.warning("Upload annulé pour le cours %s : suppression de %d objet(s) S3", course_id, len(staged_keys))
            try:
                storage.delete_objects(staged_keys)
            except (BotoCoreError, ClientError) as cleanup_error:
                logger.error("Compensation S3 échouée pour %s : %s", staged_keys, cleanup_error)
        raise

    for material in materials:
        db.refresh(material)
    logger.info("%d support(s) ajouté(s) au cours %s (mode atomique)", len(materials), course_id)
    return [MaterialResponse.model_validate(m) for m in materials]


def get_materials(
    db: Session,
    storage: StorageService,
    course_id: uuid.UUID,
    user: CurrentUser,
) -> List[MaterialResponse]:
    """
    Liste les supports d'un cours (ordre d'upload puis date de création).
    Les URLs présignées ne sont fournies qu'aux utilisateurs ayant accès au cours.
    """
    course = get_course_or_404(db, course_id)

    materials = db.execute(
        select(CourseMaterial)
        .where(CourseMaterial.course_id == course_id)
        .order_by(CourseMaterial.upload_order, CourseMaterial.created_at)
    ).scalars().all()

    can_download = has_content_access(db, course, user)

    result = []
    for material in materials:
        response = MaterialResponse.model_validate(material)
        if can_download:
            response.download_url = storage.generate_download_url(material.s3_key, material.s3_bucket)
        result.append(response)
    return result


def delete_material(
    db: Session,
    storage: StorageService,
    course_id: uuid.UUID,
    material_id: uuid.UUID,
    user: CurrentUser,
) -> None:
    """Supprime l'objet S3 puis la ligne de métadonnées."""
    material = db.get(CourseMaterial, material_id)
    if material is None or material.course_id != course_id:
        raise NotFoundError("Support introuvable.")

    course = get_course_or_404(db, course_id)
    policy.authorize(user, policy.MATERIAL_DELETE, course)

    storage.delete_object(material.s3_key, material.s3_bucket)
    db.delete(material)
    db.commit()

    logger.info("Support %s supprimé du cours %s", material_id, course_id)
