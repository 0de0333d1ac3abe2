"""
Tests d'intégration API pour les paiements Stripe.
Testent la session Checkout, le webhook signé, le statut de paiement et la
vérification d'accès.
"""

import json
import uuid
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import stripe

from app.exceptions import NotFoundError
from app.schemas.enrollment import CourseAccessResponse
from app.schemas.payment import CheckoutResponse, SessionDetails
from app.services.payment_service import AlreadyEnrolledError


def make_checkout_response(course_id) -> CheckoutResponse:
    return CheckoutResponse(
        session_id="cs_test_123",
        checkout_url="https://checkout.stripe.com/c/pay/cs_test_123",
        session_details=SessionDetails(
            course_id=course_id,
            course_name="Python avancé",
            amount=Decimal("49.99"),
            currency="USD",
            expires_at=datetime(2026, 10, 19, 12, 30),
        ),
    )


WEBHOOK_PAYLOAD = json.dumps({
    "id": "evt_1",
    "type": "checkout.session.completed",
    "data": {"object": {"id": "cs_test_123"}},
}).encode()


# ============================================================
# POST /api/payments/create-checkout-session
# ============================================================

def test_checkout_succes(client, login_as, student):
    login_as(student)
    course_id = uuid.uuid4()
    with patch("app.routers.payments.payment_service.create_checkout_session") as mock:
        mock.return_value = make_checkout_response(course_id)
        response = client.post("/api/payments/create-checkout-session", json={"courseId": str(course_id)})

    assert response.status_code == 200
    data = response.json()
    assert data["sessionId"] == "cs_test_123"
    assert data["checkoutUrl"].startswith("https://checkout.stripe.com")
    assert data["sessionDetails"]["courseId"] == str(course_id)
    assert mock.call_args.args[1] == course_id


def test_checkout_par_un_formateur(client, login_as, instructor):
    login_as(instructor)
    response = client.post("/api/payments/create-checkout-session", json={"courseId": str(uuid.uuid4())})
    assert response.status_code == 403


def test_checkout_sans_jeton(client):
    response = client.post("/api/payments/create-checkout-session", json={"courseId": str(uuid.uuid4())})
    assert response.status_code == 401


def test_checkout_cours_introuvable(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.payment_service.create_checkout_session") as mock:
        mock.side_effect = NotFoundError("Cours introuvable ou non disponible à l'achat.")
        response = client.post("/api/payments/create-checkout-session", json={"courseId": str(uuid.uuid4())})
    assert response.status_code == 404


def test_checkout_deja_inscrit(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.payment_service.create_checkout_session") as mock:
        mock.side_effect = AlreadyEnrolledError("active")
        response = client.post("/api/payments/create-checkout-session", json={"courseId": str(uuid.uuid4())})

    assert response.status_code == 400
    assert response.json()["detail"]["enrollmentStatus"] == "active"


def test_checkout_carte_refusee(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.payment_service.create_checkout_session") as mock:
        mock.side_effect = stripe.CardError("Carte refusée", None, "card_declined")
        response = client.post("/api/payments/create-checkout-session", json={"courseId": str(uuid.uuid4())})
    assert response.status_code == 400


def test_checkout_corps_invalide(client, login_as, student):
    login_as(student)
    response = client.post("/api/payments/create-checkout-session", json={"courseId": "abc"})
    assert response.status_code == 400


# ============================================================
# POST /api/payments/stripe-webhook
# ============================================================

def test_webhook_signature_invalide(client):
    """Signature invalide → 400, aucun traitement."""
    with patch("app.routers.payments.payment_service.construct_webhook_event") as construct, \
         patch("app.routers.payments.payment_service.handle_webhook_event") as handle:
        construct.side_effect = stripe.SignatureVerificationError("signature invalide", "t=1,v1=bad")
        response = client.post(
            "/api/payments/stripe-webhook",
            content=WEBHOOK_PAYLOAD,
            headers={"Stripe-Signature": "t=1,v1=bad"},
        )

    assert response.status_code == 400
    handle.assert_not_called()


def test_webhook_corps_brut_transmis(client, db):
    """Le corps brut et l'en-tête de signature sont passés tels quels à la vérification."""
    with patch("app.routers.payments.payment_service.construct_webhook_event") as construct, \
         patch("app.routers.payments.payment_service.handle_webhook_event") as handle:
        construct.return_value = json.loads(WEBHOOK_PAYLOAD)
        response = client.post(
            "/api/payments/stripe-webhook",
            content=WEBHOOK_PAYLOAD,
            headers={"Stripe-Signature": "t=1,v1=ok"},
        )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    construct.assert_called_once_with(WEBHOOK_PAYLOAD, "t=1,v1=ok")
    handle.assert_called_once_with(db, json.loads(WEBHOOK_PAYLOAD))


def test_webhook_erreur_de_traitement(client):
    """Échec du traitement → 500 pour que Stripe relivre l'événement."""
    with patch("app.routers.payments.payment_service.construct_webhook_event") as construct, \
         patch("app.routers.payments.payment_service.handle_webhook_event") as handle:
        construct.return_value = json.loads(WEBHOOK_PAYLOAD)
        handle.side_effect = NotFoundError("Paiement introuvable.")
        response = client.post(
            "/api/payments/stripe-webhook",
            content=WEBHOOK_PAYLOAD,
            headers={"Stripe-Signature": "t=1,v1=ok"},
        )
    assert response.status_code == 500


def test_webhook_sans_authentification(client):
    """Le webhook n'exige pas de jeton d'accès."""
    with patch("app.routers.payments.payment_service.construct_webhook_event") as construct, \
         patch("app.routers.payments.payment_service.handle_webhook_event"):
        construct.return_value = {"id": "evt_2", "type": "customer.created", "data": {"object": {}}}
        response = client.post("/api/payments/stripe-webhook", content=b"{}", headers={"Stripe-Signature": "s"})
    assert response.status_code == 200


# ============================================================
# GET /api/payments/payment-status/{session_id}
# ============================================================

def test_statut_paiement_introuvable(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.payment_service.get_payment_status") as mock:
        mock.side_effect = NotFoundError("Session de paiement introuvable.")
        response = client.get("/api/payments/payment-status/cs_inconnu")
    assert response.status_code == 404


# ============================================================
# GET /api/payments/verify-access/{course_id}
# ============================================================

def test_verification_acces(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.enrollment_service.verify_course_access") as mock:
        mock.return_value = CourseAccessResponse(has_access=False, access_type="none", message="Cours non acheté.")
        response = client.get(f"/api/payments/verify-access/{uuid.uuid4()}")

    assert response.status_code == 200
    assert response.json()["hasAccess"] is False
    assert response.json()["accessType"] == "none"


def test_verification_acces_cours_introuvable(client, login_as, student):
    login_as(student)
    with patch("app.routers.payments.enrollment_service.verify_course_access") as mock:
        mock.side_effect = NotFoundError("Cours introuvable.")
        response = client.get(f"/api/payments/verify-access/{uuid.uuid4()}")
    assert response.status_code == 404
