"""
Modèles SQLAlchemy pour les paiements Stripe et le registre des événements webhook.
"""

import uuid
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.database import Base

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Payment(Base):
    """Paiement d'un cours : créé en pending à l'ouverture de la session Checkout."""
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'refunded')", name="ck_payments_status"
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    stripe_session_id = Column(String(255), unique=True, nullable=False)
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), default="pending")  # pending, completed, failed, refunded
    # "metadata" est réservé par SQLAlchemy sur les classes déclaratives
    payment_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)


class StripeWebhookEvent(Base):
    """Registre des événements Stripe déjà appliqués (clé = id d'événement Stripe)."""
    __tablename__ = "stripe_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime, server_default=func.now())
