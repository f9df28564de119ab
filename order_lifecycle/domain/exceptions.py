class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class InvalidStatusError(DomainException):
    def __init__(self, value, kind: str = "заказа"):
        self.value = value
        super().__init__(f"Недопустимый статус {kind}: {value!r}")


class InvalidTransitionError(DomainException):
    def __init__(self, operation: str, current_status, message: str | None = None):
        self.operation = operation
        self.current_status = current_status
        status = getattr(current_status, "value", current_status)
        super().__init__(
            message or f"Операция '{operation}' недопустима в статусе {status}"
        )


class ActiveReturnExistsError(InvalidTransitionError):
    def __init__(self, order_id: str, current_status):
        self.order_id = order_id
        super().__init__(
            "create_return",
            current_status,
            f"Для заказа {order_id} уже существует активная заявка на возврат",
        )


class ActiveDisputeExistsError(InvalidTransitionError):
    def __init__(self, order_id: str, current_status):
        self.order_id = order_id
        super().__init__(
            "open_dispute",
            current_status,
            f"Для заказа {order_id} уже открыт спор",
        )


class ReturnWindowExpiredError(InvalidTransitionError):
    def __init__(self, days_since_delivery: int, window_days: int, current_status):
        self.days_since_delivery = days_since_delivery
        self.window_days = window_days
        super().__init__(
            "create_return",
            current_status,
            f"Срок возврата {window_days} дней истек "
            f"({days_since_delivery} дней с момента доставки)",
        )


class ConcurrentUpdateError(InvalidTransitionError):
    """Агрегат изменен другим запросом между чтением и записью."""

    def __init__(self, aggregate: str, aggregate_id: str, expected_version: int):
        self.aggregate = aggregate
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        super().__init__(
            "save",
            None,
            f"{aggregate} {aggregate_id} был изменен параллельно "
            f"(ожидалась версия {expected_version})",
        )


class UnauthorizedError(DomainException):
    pass


class PaymentServiceError(DomainException):
    pass


class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class ReturnNotFoundError(NotFoundError):
    pass


class DisputeNotFoundError(NotFoundError):
    pass
