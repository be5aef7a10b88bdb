from pydantic import BaseModel, field_validator

class PaymentOrderRequest(BaseModel):
    appointmentId: int

    @field_validator("appointmentId")
    @classmethod
    def validate_appointment_id(cls, v):
        if v <= 0:
            raise ValueError("Invalid appointment ID")
        return v

class RazorpayOrder(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"

class PaymentOrderResponse(BaseModel):
    success: bool = True
    order: RazorpayOrder
    key_id: str

class PaymentVerification(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str

    @field_validator("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Payment details are required")
        return v
