from sqlalchemy import (
    Table,
    Column,
    String,
    Integer,
    DateTime,
    JSON,
    ForeignKey,
    MetaData,
    Text,
)

metadata = MetaData()


# Статусы хранятся строками и разбираются при чтении (OrderStatus.parse),
# чтобы неизвестное значение в БД давало InvalidStatusError, а не молча приводилось
orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String, unique=True, nullable=False),
    Column("customer_id", String, nullable=False, index=True),
    Column("customer_name", String, nullable=False),
    Column("customer_email", String, nullable=False),
    Column("creator_id", String, nullable=False, index=True),
    Column("shipping_address", JSON, nullable=False),
    Column("total_amount", Integer, nullable=False),
    Column("status", String(32), nullable=False, index=True),
    Column("payment_reference", String, nullable=True),
    Column("refund_reference", String, nullable=True),
    Column("refund_reason", Text, nullable=True),
    Column("tracking_number", String, nullable=True),
    Column("carrier", String, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("shipped_at", DateTime(timezone=True), nullable=True),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("version", Integer, nullable=False, default=1),
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", String, nullable=False),
    Column("variant_id", String, nullable=True),
    Column("name", String, nullable=False),
    Column("unit_price", Integer, nullable=False),
    Column("quantity", Integer, nullable=False),
)


# active_order_id = order_id, пока возврат не в терминальном статусе, иначе NULL.
# Уникальный индекс допускает много NULL, но только один активный возврат на заказ
return_requests_tbl = Table(
    "return_requests",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("active_order_id", String, unique=True, nullable=True),
    Column("customer_id", String, nullable=False, index=True),
    Column("creator_id", String, nullable=False, index=True),
    Column("reason", String(32), nullable=False),
    Column("reason_details", Text, nullable=True),
    Column("status", String(32), nullable=False),
    Column("order_status_before", String(32), nullable=False),
    Column("rejection_reason", Text, nullable=True),
    Column("tracking_number", String, nullable=True),
    Column("carrier", String, nullable=True),
    Column("refund_reference", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("approved_at", DateTime(timezone=True), nullable=True),
    Column("rejected_at", DateTime(timezone=True), nullable=True),
    Column("shipped_back_at", DateTime(timezone=True), nullable=True),
    Column("received_at", DateTime(timezone=True), nullable=True),
    Column("refunded_at", DateTime(timezone=True), nullable=True),
    Column("version", Integer, nullable=False, default=1),
)


disputes_tbl = Table(
    "disputes",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("active_order_id", String, unique=True, nullable=True),
    Column("customer_id", String, nullable=False),
    Column("creator_id", String, nullable=False),
    Column("type", String(32), nullable=False),
    Column("description", Text, nullable=False),
    Column("status", String(32), nullable=False),
    Column("resolution", Text, nullable=True),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("version", Integer, nullable=False, default=1),
)
