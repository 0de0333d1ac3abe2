"""
Service métier pour l'authentification : inscription, connexion, rafraîchissement.
"""

import logging
import uuid
from typing import Optional, Tuple

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.auth import CurrentUser, RegisterRequest, UserResponse
from app.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Email ou mot de passe invalide."


class InvalidCredentialsError(Exception):
    """Identifiants ou jeton de rafraîchissement invalides (→ 401)."""


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(User.email == email)).scalar()


def register_user(db: Session, data: RegisterRequest) -> User:
    """
    Crée un compte. Le mot de passe est haché (sel inclus) avant stockage.
    Lève ValueError si l'email est déjà enregistré.
    """
    email = data.email.lower()
    if get_user_by_email(db, email) is not None:
        raise ValueError("Email déjà enregistré.")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Inscription concurrente avec le même email : contrainte UNIQUE
        db.rollback()
        raise ValueError("Email déjà enregistré.")
    db.refresh(user)

    logger.info("Utilisateur inscrit : %s (%s)", user.id, user.role)
    return user


def authenticate(db: Session, email: str, password: str) -> Tuple[User, str, str]:
    """
    Vérifie les identifiants et retourne (utilisateur, jeton d'accès, jeton de rafraîchissement).
    Email inconnu et mauvais mot de passe lèvent la même erreur.
    """
    user = get_user_by_email(db, email.strip().lower())
    if user is None:
        logger.info("Connexion refusée : email inconnu")
        raise InvalidCredentialsError(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        logger.info("Connexion refusée : mot de passe incorrect pour %s", user.id)
        raise InvalidCredentialsError(INVALID_CREDENTIALS)

    access_token = create_access_token(user.id, user.role)
    refresh_token = create_refresh_token(user.id, user.role, name=user.first_name)
    return user, access_token, refresh_token


def refresh_access_token(
    db: Session,
    refresh_token: Optional[str],
    current_user: CurrentUser,
) -> Tuple[User, str]:
    """
    Valide le jeton de rafraîchissement et émet un nouveau jeton d'accès
    pour le même utilisateur. Le cookie doit appartenir à l'appelant authentifié.
    """
    if not refresh_token:
        raise InvalidCredentialsError("Jeton de rafraîchissement absent.")

    try:
        payload = decode_refresh_token(refresh_token)
        user_id = uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise InvalidCredentialsError("Jeton de rafraîchissement invalide ou expiré.")

    if user_id != current_user.id:
        logger.warning("Jeton de rafraîchissement de %s présenté par %s", user_id, current_user.id)
        raise InvalidCredentialsError("Jeton de rafraîchissement invalide ou expiré.")

    user = db.get(User, user_id)
    if user is None:
        raise InvalidCredentialsError("Jeton de rafraîchissement invalide ou expiré.")

    return user, create_access_token(user.id, user.role)


def to_user_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)
