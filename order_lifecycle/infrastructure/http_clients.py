import httpx
import logging

from order_lifecycle.application.interfaces import PaymentsService, RefundConfirmation
from order_lifecycle.domain.exceptions import PaymentServiceError

logger = logging.getLogger(__name__)


class HTTPPaymentsClient(PaymentsService):
    """Клиент платежного сервиса. Без повторов: политику retry выбирает вызывающая сторона"""

    def __init__(self, base_url: str, api_token: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._transport = transport

    async def refund(self, payment_reference: str, amount: int, idempotency_key: str) -> RefundConfirmation:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/api/payments/{payment_reference}/refunds",
                    json={
                        "amount": amount,
                        "idempotency_key": idempotency_key
                    },
                    headers={
                        "X-API-Key": self._api_token,
                        "Content-Type": "application/json"
                    },
                    timeout=self._timeout
                )

        except httpx.TimeoutException as e:
            logger.error(f"Payment service таймаут при возврате {payment_reference}: {e}")
            raise PaymentServiceError(f"Payment service не ответил вовремя: {str(e)}") from e
        except httpx.RequestError as e:
            logger.error(f"Payment service ошибка подключения: {e}")
            raise PaymentServiceError(f"Payment service не доступен: {str(e)}") from e

        if response.status_code not in (200, 201):
            logger.error(f"Payment service вернул {response.status_code} для возврата {payment_reference}")
            raise PaymentServiceError(f"Payment service ошибка: {response.status_code}")

        try:
            data = response.json()
            confirmation = RefundConfirmation(
                id=data["id"],
                amount=data.get("amount", amount),
                status=data.get("status", "succeeded"),
            )
        except (ValueError, KeyError) as e:
            raise PaymentServiceError(f"Некорректный ответ payment service: {str(e)}") from e
        if confirmation.status not in ("succeeded", "pending"):
            raise PaymentServiceError(f"Возврат отклонен платежным сервисом: {confirmation.status}")
        logger.info(f"Возврат {confirmation.id} по платежу {payment_reference} на сумму {confirmation.amount}")
        return confirmation
