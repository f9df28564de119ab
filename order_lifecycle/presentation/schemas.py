from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from order_lifecycle.domain.disputes import DisputeStatus, DisputeType
from order_lifecycle.domain.escrow import EscrowStatus
from order_lifecycle.domain.models import OrderStatus
from order_lifecycle.domain.returns import ReturnReason, ReturnStatus


class OrderItemRequest(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    unit_price: int
    quantity: int


class ShippingAddressSchema(BaseModel):
    street: str
    city: str
    postal_code: str
    country: str


class CreateOrderRequest(BaseModel):
    customer_id: str
    customer_name: str
    customer_email: str
    creator_id: str
    items: list[OrderItemRequest]
    shipping_address: ShippingAddressSchema


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    variant_id: Optional[str] = None
    name: str
    unit_price: int
    quantity: int
    subtotal: int


class OrderResponse(BaseModel):
    id: str
    order_number: str
    customer_id: str
    customer_name: str
    customer_email: str
    creator_id: str
    items: list[OrderItemResponse]
    shipping_address: ShippingAddressSchema
    total_amount: int
    status: OrderStatus
    payment_reference: Optional[str] = None
    refund_reference: Optional[str] = None
    refund_reason: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            creator_id=order.creator_id,
            items=[
                OrderItemResponse(**item.model_dump(), subtotal=item.subtotal)
                for item in order.items
            ],
            shipping_address=ShippingAddressSchema(**order.shipping_address.model_dump()),
            total_amount=order.total_amount,
            status=order.status,
            payment_reference=order.payment_reference,
            refund_reference=order.refund_reference,
            refund_reason=order.refund_reason,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            completed_at=order.completed_at,
        )


class EscrowResponse(BaseModel):
    order_id: str
    status: EscrowStatus
    release_date: Optional[datetime] = None
    remaining_hours: Optional[int] = None
    is_released: bool


class PaymentCallbackRequest(BaseModel):
    payment_id: str
    order_id: str
    status: str
    amount: int
    error_message: Optional[str] = None


class ShipOrderRequest(BaseModel):
    tracking_number: str
    carrier: str


class CancelOrderRequest(BaseModel):
    reason: str


class RefundOrderRequest(BaseModel):
    reason: Optional[str] = None


class CreateReturnRequest(BaseModel):
    order_id: str
    reason: ReturnReason
    reason_details: Optional[str] = None


class RejectReturnRequest(BaseModel):
    reason: str


class ShipBackReturnRequest(BaseModel):
    tracking_number: str
    carrier: str


class ReturnResponse(BaseModel):
    id: str
    order_id: str
    customer_id: str
    creator_id: str
    reason: ReturnReason
    reason_details: Optional[str] = None
    status: ReturnStatus
    rejection_reason: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    refund_reference: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    shipped_back_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, return_request):
        return cls(**return_request.model_dump(include=set(cls.model_fields)))


class OpenDisputeRequest(BaseModel):
    order_id: str
    type: DisputeType
    description: str


class ResolveDisputeRequest(BaseModel):
    resolution: str
    refund: bool = False


class CloseDisputeRequest(BaseModel):
    reason: str


class DisputeResponse(BaseModel):
    id: str
    order_id: str
    customer_id: str
    type: DisputeType
    description: str
    status: DisputeStatus
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, dispute):
        return cls(**dispute.model_dump(include=set(cls.model_fields)))


class ErrorResponse(BaseModel):
    detail: str
