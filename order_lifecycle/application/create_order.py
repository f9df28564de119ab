import logging
import uuid
from pydantic import BaseModel

from order_lifecycle.application.common import Clock, require, utcnow
from order_lifecycle.domain.models import Order, OrderItem, ShippingAddress


logger = logging.getLogger(__name__)


class OrderItemDTO(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str
    unit_price: int
    quantity: int


class ShippingAddressDTO(BaseModel):
    street: str
    city: str
    postal_code: str
    country: str


class CreateOrderDTO(BaseModel):
    customer_id: str
    customer_name: str
    customer_email: str
    creator_id: str
    items: list[OrderItemDTO]
    shipping_address: ShippingAddressDTO


class CreateOrderUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Создание заказа для покупателя {order_data.customer_id}, создатель {order_data.creator_id}")

        customer_id = require(order_data.customer_id, "Customer ID")
        creator_id = require(order_data.creator_id, "Creator ID")
        customer_name = require(order_data.customer_name, "Имя покупателя")
        customer_email = require(order_data.customer_email, "Email покупателя")
        address = order_data.shipping_address
        require(address.street, "Адрес доставки")

        items = [
            OrderItem(
                id=str(uuid.uuid4()),
                product_id=require(item.product_id, "Product ID"),
                variant_id=item.variant_id,
                name=require(item.name, "Название товара"),
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in order_data.items
        ]

        order = Order.create(
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            creator_id=creator_id,
            items=items,
            shipping_address=ShippingAddress(**address.model_dump()),
            now=self._clock(),
        )

        async with self._uow() as uow:
            await uow.orders.create(order)
            await uow.commit()

        logger.info(f"Заказ создан: {order.id} ({order.order_number}), сумма {order.total_amount}")
        return order
