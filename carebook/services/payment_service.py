from sqlalchemy.orm import Session
from typing import Optional
import hashlib
import hmac
import logging

import httpx

from ..core.config import settings
from ..core.exceptions import (
    BadRequestError, GatewayError, NotFoundError, ServiceUnavailableError,
)
from ..models.appointment import Appointment, AppointmentStatus, PaymentStatus
from ..models.user import User
from ..schemas.payment import PaymentVerification, RazorpayOrder

logger = logging.getLogger(__name__)

class RazorpayClient:
    """Minimal Razorpay Orders API client."""

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        base_url: str = "https://api.razorpay.com/v1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(self, amount: int, currency: str, receipt: str) -> RazorpayOrder:
        """Create an order; ``amount`` is in the currency's smallest unit."""
        async with httpx.AsyncClient(
            transport=self.transport,
            auth=(self.key_id, self.key_secret),
            timeout=15,
        ) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/orders",
                    json={"amount": amount, "currency": currency, "receipt": receipt},
                )
            except httpx.HTTPError as e:
                logger.error(f"Razorpay order request failed: {str(e)}")
                raise GatewayError("Payment gateway unavailable")

        if response.status_code != 200:
            logger.error(f"Razorpay rejected order: {response.status_code} {response.text}")
            raise GatewayError("Failed to create payment order")

        return RazorpayOrder(**response.json())

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = hmac.new(
            self.key_secret.encode(),
            f"{order_id}|{payment_id}".encode(),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature)

def get_payment_gateway() -> RazorpayClient:
    """Payment gateway dependency."""
    return RazorpayClient(
        settings.RAZORPAY_KEY_ID,
        settings.RAZORPAY_KEY_SECRET,
        settings.RAZORPAY_API_URL,
    )

class PaymentService:
    def __init__(self, db: Session, gateway: RazorpayClient):
        self.db = db
        self.gateway = gateway

    def _require_gateway(self):
        if not self.gateway.configured:
            raise ServiceUnavailableError("Online payments are not configured")

    async def create_order(self, appointment_id: int, patient: User) -> RazorpayOrder:
        """Open a Razorpay order for the consultation fee."""
        self._require_gateway()

        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.patient_id == patient.id,
        ).first()

        if not appointment:
            raise NotFoundError("Appointment not found")
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise BadRequestError("Appointment Cancelled or not found")
        if appointment.payment_status == PaymentStatus.COMPLETED:
            raise BadRequestError("Appointment is already paid")

        amount = int(round(appointment.consultation_fee * 100))
        order = await self.gateway.create_order(
            amount=amount,
            currency=settings.CURRENCY,
            receipt=str(appointment.id),
        )

        appointment.razorpay_order_id = order.id
        appointment.payment_status = PaymentStatus.PENDING
        self.db.commit()

        logger.info(f"Created payment order {order.id} for appointment {appointment.id}")
        return order

    def verify_payment(self, verification: PaymentVerification, patient: User) -> Appointment:
        """Check the checkout signature and mark the appointment paid."""
        self._require_gateway()

        appointment = self.db.query(Appointment).filter(
            Appointment.razorpay_order_id == verification.razorpay_order_id,
            Appointment.patient_id == patient.id,
        ).first()

        if not appointment:
            raise NotFoundError("Payment order not found")
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise BadRequestError("Appointment Cancelled or not found")
        if appointment.payment_status == PaymentStatus.COMPLETED:
            raise BadRequestError("Appointment is already paid")

        if not self.gateway.verify_signature(
            verification.razorpay_order_id,
            verification.razorpay_payment_id,
            verification.razorpay_signature,
        ):
            appointment.payment_status = PaymentStatus.FAILED
            self.db.commit()
            logger.warning(f"Signature mismatch for payment order {verification.razorpay_order_id}")
            raise BadRequestError("Payment Failed")

        appointment.payment_status = PaymentStatus.COMPLETED
        appointment.payment_id = verification.razorpay_payment_id
        appointment.razorpay_payment_id = verification.razorpay_payment_id
        appointment.razorpay_signature = verification.razorpay_signature
        self.db.commit()

        logger.info(f"Payment verified for appointment {appointment.id}")
        return appointment
