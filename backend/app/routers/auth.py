"""
Router d'authentification.
Inscription, connexion (jeton d'accès + cookie de rafraîchissement),
rafraîchissement et vérification du jeton d'accès.
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user
from app.schemas.auth import CurrentUser, LoginRequest, LoginResponse, RefreshResponse, RegisterRequest
from app.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["Authentification"])

REFRESH_COOKIE = "refresh_token"


@router.post("/register", status_code=201, summary="Créer un compte")
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Crée un compte formateur ou étudiant. Email déjà utilisé ou malformé → 400."""
    try:
        auth_service.register_user(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Utilisateur inscrit avec succès."}


@router.post("/login", response_model=LoginResponse, summary="Se connecter")
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """
    Vérifie les identifiants et retourne un jeton d'accès.
    Le jeton de rafraîchissement est posé dans un cookie HTTP-only.
    """
    try:
        user, access_token, refresh_token = auth_service.authenticate(db, data.email, data.password)
    except auth_service.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))

    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return LoginResponse(
        message="Connexion réussie.",
        access_token=access_token,
        user=auth_service.to_user_response(user),
    )


@router.post("/refresh-access-token", response_model=RefreshResponse, summary="Rafraîchir le jeton d'accès")
def refresh_access_token(
    refresh_token: Optional[str] = Cookie(default=None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Émet un nouveau jeton d'accès à partir du cookie de rafraîchissement.
    Le cookie doit appartenir à l'utilisateur du Bearer.
    """
    try:
        user, token = auth_service.refresh_access_token(db, refresh_token, current_user)
    except auth_service.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return RefreshResponse(token=token, user=auth_service.to_user_response(user))


@router.post("/verify-access-token", summary="Vérifier le jeton d'accès")
def verify_access_token(user: CurrentUser = Depends(get_current_user)):
    return {"message": True}
