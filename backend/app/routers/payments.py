"""
Router pour les paiements Stripe.
Création de session Checkout, webhook Stripe (corps brut signé),
statut d'un paiement et vérification d'accès à un cours.
"""

import logging
import uuid

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app import policy
from app.database import get_db
from app.dependencies import get_current_user, require_permission
from app.exceptions import NotFoundError
from app.schemas.auth import CurrentUser
from app.schemas.enrollment import CourseAccessResponse
from app.schemas.payment import CheckoutRequest, CheckoutResponse, PaymentStatusResponse, WebhookAck
from app.services import enrollment_service, payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Paiements"])


@router.post("/create-checkout-session", response_model=CheckoutResponse, summary="Ouvrir une session de paiement")
def create_checkout_session(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission(policy.CHECKOUT_CREATE)),
):
    """
    Crée une session Stripe Checkout pour un cours publié et enregistre un
    paiement en attente. Le frontend redirige ensuite vers checkoutUrl.
    """
    try:
        return payment_service.create_checkout_session(db, data.course_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except payment_service.AlreadyEnrolledError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": str(e), "enrollmentStatus": e.enrollment_status},
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.CardError as e:
        raise HTTPException(status_code=400, detail=f"Paiement refusé : {e.user_message or e}")


@router.post("/stripe-webhook", response_model=WebhookAck, summary="Webhook Stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default=None),
    db: Session = Depends(get_db),
):
    """
    Reçoit les événements Stripe. La signature est vérifiée sur le corps brut.

    - checkout.session.completed → paiement completed + inscription active
    - checkout.session.expired → paiement failed
    - payment_intent.payment_failed → paiement failed
    - autres types → ignorés

    Une erreur de traitement renvoie 500 : Stripe relivrera l'événement.
    """
    payload = await request.body()

    try:
        event = payment_service.construct_webhook_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Signature du webhook Stripe invalide : %s", e)
        raise HTTPException(status_code=400, detail=f"Erreur webhook : {e}")

    try:
        await run_in_threadpool(payment_service.handle_webhook_event, db, event)
    except Exception:
        raise HTTPException(status_code=500, detail="Le traitement du webhook a échoué.")

    return WebhookAck(received=True)


@router.get("/payment-status/{session_id}", response_model=PaymentStatusResponse, summary="Statut d'un paiement")
def payment_status(session_id: str, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    try:
        return payment_service.get_payment_status(db, session_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/verify-access/{course_id}", response_model=CourseAccessResponse, summary="Vérifier l'accès à un cours")
def verify_access(course_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """Accès accordé au formateur du cours ou à un étudiant inscrit dont le paiement est complété."""
    try:
        return enrollment_service.verify_course_access(db, course_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
