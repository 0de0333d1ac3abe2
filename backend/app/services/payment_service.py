"""
Service métier pour les paiements Stripe Checkout et les inscriptions qui en découlent.

Flux :
1. L'étudiant ouvre une session Checkout → paiement enregistré en pending
2. Stripe notifie le résultat par webhook (livraison au moins une fois)
3. checkout.session.completed → paiement completed + inscription active,
   dans une seule transaction

Chaque événement appliqué est inscrit dans stripe_webhook_events, dans la
même transaction : une relivraison du même événement est ignorée.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import stripe
from sqlalchemy import select
from sqlalchemy.orm import Session

from app import policy
from app.config import settings
from app.exceptions import NotFoundError
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.payment import Payment, StripeWebhookEvent
from app.models.user import User
from app.schemas.auth import CurrentUser
from app.schemas.payment import (
    CheckoutResponse,
    PaymentStatusResponse,
    PaymentSummary,
    SessionDetails,
    StripeSessionSummary,
)

logger = logging.getLogger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY

SESSION_COMPLETED = "checkout.session.completed"
SESSION_EXPIRED = "checkout.session.expired"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


class AlreadyEnrolledError(ValueError):
    def __init__(self, enrollment_status: str):
        super().__init__("Vous êtes déjà inscrit à ce cours.")
        self.enrollment_status = enrollment_status


def _to_minor_units(amount: Decimal) -> int:
    """Stripe attend des montants en centimes."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_checkout_session(db: Session, course_id: uuid.UUID, user: CurrentUser) -> CheckoutResponse:
    """
    Ouvre une session Stripe Checkout pour un cours publié.

    Validations :
    1. Le cours existe et est publié (sinon NotFoundError)
    2. L'étudiant n'est pas déjà inscrit
    3. L'étudiant n'est pas le formateur du cours
    """
    policy.authorize(user, policy.CHECKOUT_CREATE)

    course = db.execute(
        select(Course).where(Course.id == course_id, Course.status == "published")
    ).scalar()
    if course is None:
        raise NotFoundError("Cours introuvable ou non disponible à l'achat.")

    enrollment = db.execute(
        select(Enrollment).where(
            Enrollment.student_id == user.id,
            Enrollment.course_id == course_id,
        )
    ).scalar()
    if enrollment is not None:
        raise AlreadyEnrolledError(enrollment.status)

    if course.instructor_id == user.id:
        raise ValueError("Vous ne pouvez pas acheter votre propre cours.")

    student = db.get(User, user.id)
    if student is None:
        raise NotFoundError("Utilisateur introuvable.")

    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.CHECKOUT_SESSION_EXPIRE_MINUTES)
    session = stripe.checkout.Session.create(
        payment_method_types=["card"],
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": course.currency.lower(),
                "product_data": {
                    "name": course.title,
                    "description": course.description or "Cours en ligne",
                    "images": [course.thumbnail_url] if course.thumbnail_url else [],
                },
                "unit_amount": _to_minor_units(course.price),
            },
            "quantity": 1,
        }],
        success_url=f"{settings.FRONTEND_URL}/courses/{course_id}/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_URL}/courses/{course_id}?cancelled=true",
        customer_email=student.email,
        client_reference_id=str(user.id),
        metadata={
            "courseId": str(course_id),
            "studentId": str(user.id),
            "courseName": course.title,
            "instructorId": str(course.instructor_id),
        },
        # Recopiées sur le PaymentIntent : son id n'est connu qu'à la complétion,
        # payment_intent.payment_failed ne peut être rattaché que par ces metadata
        payment_intent_data={
            "metadata": {
                "courseId": str(course_id),
                "studentId": str(user.id),
            },
        },
        expires_at=int(expires_at.timestamp()),
    )

    payment = Payment(
        student_id=user.id,
        course_id=course_id,
        stripe_session_id=session.id,
        amount=course.price,
        currency=course.currency,
        status="pending",
        payment_metadata={
            "sessionId": session.id,
            "courseTitle": course.title,
            "createdAt": _now_iso(),
        },
    )
    db.add(payment)
    db.commit()

    logger.info("Session Checkout %s créée : étudiant %s, cours %s", session.id, user.id, course_id)

    return CheckoutResponse(
        session_id=session.id,
        checkout_url=session.url,
        session_details=SessionDetails(
            course_id=course_id,
            course_name=course.title,
            amount=course.price,
            currency=course.currency,
            expires_at=datetime.fromtimestamp(session.expires_at, tz=timezone.utc) if session.expires_at else None,
        ),
    )


def construct_webhook_event(payload: bytes, signature: Optional[str]) -> dict:
    """
    Vérifie la signature Stripe du corps brut et retourne l'événement en dict.
    Lève ValueError (corps invalide) ou stripe.SignatureVerificationError.
    """
    event = stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    return event.to_dict()


def handle_webhook_event(db: Session, event: dict) -> bool:
    """
    Applique un événement Stripe. Retourne False si l'événement est ignoré
    (type non géré ou déjà appliqué).
    """
    event_type = event.get("type")
    data_object = event.get("data", {}).get("object", {})

    handlers = {
        SESSION_COMPLETED: _handle_session_completed,
        SESSION_EXPIRED: _handle_session_expired,
        PAYMENT_INTENT_FAILED: _handle_payment_failed,
    }
    handler = handlers.get(event_type)
    if handler is None:
        logger.info("Événement Stripe non géré : %s", event_type)
        return False

    try:
        if not _record_event(db, event.get("id"), event_type):
            db.rollback()
            return False
        handler(db, data_object)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Traitement de l'événement %s (%s) échoué", event.get("id"), event_type, exc_info=True)
        raise
    return True


def _record_event(db: Session, event_id: Optional[str], event_type: str) -> bool:
    """Inscrit l'événement dans le registre ; False s'il y figure déjà."""
    if not event_id:
        return True
    if db.get(StripeWebhookEvent, event_id) is not None:
        logger.info("Événement Stripe %s déjà traité, ignoré.", event_id)
        return False
    db.add(StripeWebhookEvent(event_id=event_id, event_type=event_type))
    # Deux livraisons concurrentes : la seconde échoue ici sur la clé primaire
    db.flush()
    return True


def _merge_metadata(payment: Payment, **values) -> None:
    # Réaffectation : une mutation en place du JSONB n'est pas détectée
    payment.payment_metadata = {**(payment.payment_metadata or {}), **values}


def _handle_session_completed(db: Session, session: dict) -> None:
    """
    Paiement → completed, puis création ou réactivation de l'inscription.
    La ligne de paiement est verrouillée pour sérialiser les livraisons concurrentes.
    """
    session_id = session["id"]
    metadata = session.get("metadata") or {}
    logger.info("Paiement réussi pour la session %s", session_id)

    payment = db.execute(
        select(Payment).where(Payment.stripe_session_id == session_id).with_for_update()
    ).scalar()
    if payment is None:
        raise NotFoundError(f"Paiement introuvable pour la session {session_id}.")

    payment.status = "completed"
    payment.stripe_payment_intent_id = session.get("payment_intent")
    payment.completed_at = datetime.now()
    _merge_metadata(payment, completedAt=_now_iso())

    student_id = uuid.UUID(metadata["studentId"]) if metadata.get("studentId") else payment.student_id
    course_id = uuid.UUID(metadata["courseId"]) if metadata.get("courseId") else payment.course_id

    enrollment = db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.course_id == course_id,
        )
    ).scalar()

    if enrollment is None:
        db.add(Enrollment(student_id=student_id, course_id=course_id, status="active"))
        logger.info("Étudiant %s inscrit au cours %s", student_id, course_id)
    else:
        enrollment.status = "active"
        enrollment.enrollment_date = datetime.now()
        logger.info("Inscription de l'étudiant %s réactivée pour le cours %s", student_id, course_id)


def _mark_failed(payment: Optional[Payment], reference: str, **metadata) -> None:
    if payment is None:
        logger.warning("Aucun paiement trouvé pour %s", reference)
        return
    # completed et failed sont terminaux : une livraison tardive ne les écrase pas
    if payment.status != "pending":
        logger.info("Paiement %s déjà %s, événement ignoré pour %s", payment.id, payment.status, reference)
        return
    payment.status = "failed"
    _merge_metadata(payment, **metadata)
    logger.info("Paiement %s marqué failed (%s)", payment.id, reference)


def _handle_session_expired(db: Session, session: dict) -> None:
    payment = db.execute(
        select(Payment).where(Payment.stripe_session_id == session["id"]).with_for_update()
    ).scalar()
    _mark_failed(payment, f"session {session['id']}", expiredAt=_now_iso())


def _handle_payment_failed(db: Session, payment_intent: dict) -> None:
    """
    Un paiement en attente n'a pas encore d'intent id (écrit à la complétion) :
    à défaut de correspondance sur l'id, on retrouve le dernier paiement pending
    de l'étudiant pour ce cours grâce aux metadata recopiées sur l'intent.
    """
    intent_id = payment_intent["id"]
    payment = db.execute(
        select(Payment).where(Payment.stripe_payment_intent_id == intent_id).with_for_update()
    ).scalar()

    metadata = payment_intent.get("metadata") or {}
    if payment is None and metadata.get("studentId") and metadata.get("courseId"):
        payment = db.execute(
            select(Payment)
            .where(
                Payment.student_id == uuid.UUID(metadata["studentId"]),
                Payment.course_id == uuid.UUID(metadata["courseId"]),
                Payment.status == "pending",
                Payment.stripe_payment_intent_id.is_(None),
            )
            .order_by(Payment.created_at.desc())
            .with_for_update()
        ).scalar()

    if payment is not None and payment.status == "pending":
        payment.stripe_payment_intent_id = intent_id
    _mark_failed(payment, f"payment_intent {intent_id}", failedAt=_now_iso())


def get_payment_status(db: Session, session_id: str, user: CurrentUser) -> PaymentStatusResponse:
    """Paiement de l'appelant pour cette session + état de la session côté Stripe."""
    row = db.execute(
        select(Payment, Course.title)
        .join(Course, Payment.course_id == Course.id)
        .where(Payment.stripe_session_id == session_id, Payment.student_id == user.id)
    ).first()
    if row is None:
        raise NotFoundError("Session de paiement introuvable.")

    payment, course_title = row
    stripe_session = stripe.checkout.Session.retrieve(session_id)

    return PaymentStatusResponse(
        payment=PaymentSummary(
            id=payment.id,
            course_id=payment.course_id,
            course_title=course_title,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status,
            created_at=payment.created_at,
            completed_at=payment.completed_at,
        ),
        stripe_session=StripeSessionSummary(
            id=stripe_session.id,
            payment_status=stripe_session.payment_status,
            customer_email=stripe_session.customer_email,
        ),
    )
