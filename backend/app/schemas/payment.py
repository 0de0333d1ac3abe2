"""
Schémas Pydantic pour le tunnel de paiement Stripe.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.schemas.auth import CamelModel


class CheckoutRequest(CamelModel):
    course_id: uuid.UUID


class SessionDetails(CamelModel):
    course_id: uuid.UUID
    course_name: str
    amount: Decimal
    currency: str
    expires_at: Optional[datetime] = None


class CheckoutResponse(CamelModel):
    session_id: str
    checkout_url: str
    session_details: SessionDetails


class PaymentSummary(CamelModel):
    id: uuid.UUID
    course_id: uuid.UUID
    course_title: str
    amount: Decimal
    currency: str
    status: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StripeSessionSummary(CamelModel):
    id: str
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None


class PaymentStatusResponse(CamelModel):
    payment: PaymentSummary
    stripe_session: StripeSessionSummary


class WebhookAck(CamelModel):
    received: bool = True
