"""
Politique d'autorisation unique : (sujet, action, ressource) → autorisé ou non.

Tous les routers passent par authorize() au lieu de dupliquer les contrôles
de rôle. Les actions sur un cours existant exigent en plus que le formateur
soit le propriétaire du cours.
"""

import logging
from typing import Optional

from app.exceptions import PermissionDeniedError
from app.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)

COURSE_CREATE = "course:create"
COURSE_UPDATE = "course:update"
COURSE_DELETE = "course:delete"
MATERIAL_UPLOAD = "material:upload"
MATERIAL_DELETE = "material:delete"
CHECKOUT_CREATE = "checkout:create"

# Actions réservées au formateur propriétaire de la ressource
_OWNER_ACTIONS = {COURSE_UPDATE, COURSE_DELETE, MATERIAL_UPLOAD, MATERIAL_DELETE}

_MESSAGES = {
    COURSE_CREATE: "Seuls les formateurs peuvent créer des cours.",
    COURSE_UPDATE: "Seul le formateur du cours peut le modifier.",
    COURSE_DELETE: "Seul le formateur du cours peut le supprimer.",
    MATERIAL_UPLOAD: "Seul le formateur du cours peut ajouter des supports.",
    MATERIAL_DELETE: "Seul le formateur du cours peut supprimer des supports.",
    CHECKOUT_CREATE: "Seuls les étudiants peuvent acheter un cours.",
}


def is_allowed(subject: CurrentUser, action: str, resource: Optional[object] = None) -> bool:
    """Retourne True si le sujet peut effectuer l'action sur la ressource."""
    if action == COURSE_CREATE:
        return subject.is_instructor
    if action == CHECKOUT_CREATE:
        return subject.is_student
    if action in _OWNER_ACTIONS:
        if not subject.is_instructor:
            return False
        # Sans ressource chargée, seul le rôle est vérifiable
        if resource is None:
            return True
        return getattr(resource, "instructor_id", None) == subject.id
    raise ValueError(f"Action inconnue : {action}")


def authorize(subject: CurrentUser, action: str, resource: Optional[object] = None) -> None:
    """Lève PermissionDeniedError si l'action est refusée."""
    if not is_allowed(subject, action, resource):
        logger.warning("Accès refusé : utilisateur %s (%s) → %s", subject.id, subject.role, action)
        raise PermissionDeniedError(_MESSAGES[action])
