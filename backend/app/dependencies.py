"""
Dépendances FastAPI partagées : utilisateur courant (Bearer) et contrôle de rôle.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app import policy
from app.exceptions import PermissionDeniedError
from app.schemas.auth import CurrentUser
from app.security import decode_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """
    Vérifie le jeton d'accès (signature + expiration) sans accès BDD
    et retourne l'identité qu'il porte.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="En-tête Authorization absent ou invalide.")

    try:
        payload = decode_access_token(credentials.credentials)
        return CurrentUser(id=payload["sub"], role=payload["role"])
    except (JWTError, KeyError, ValueError) as e:
        logger.info("Jeton d'accès refusé : %s", e)
        raise HTTPException(status_code=401, detail="Non autorisé.")


def require_permission(action: str):
    """Fabrique une dépendance qui applique la politique sur le seul rôle."""

    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        try:
            policy.authorize(user, action)
        except PermissionDeniedError as e:
            raise HTTPException(status_code=403, detail=str(e))
        return user

    return checker
