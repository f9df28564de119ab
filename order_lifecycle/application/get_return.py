from order_lifecycle.application.common import load_return, require
from order_lifecycle.domain.exceptions import UnauthorizedError, ValidationError
from order_lifecycle.domain.returns import ReturnRequest


class GetReturnUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, return_id: str, actor_id: str | None = None) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
        if actor_id is not None and actor_id not in (return_request.customer_id, return_request.creator_id):
            raise UnauthorizedError("Нет доступа к этой заявке на возврат")
        return return_request


class ListReturnsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        creator_id: str | None = None,
        customer_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReturnRequest]:
        if not creator_id and not customer_id:
            raise ValidationError("Нужно указать creator_id или customer_id")
        if limit < 1 or offset < 0:
            raise ValidationError("Некорректные параметры пагинации")
        async with self._uow() as uow:
            if creator_id:
                return await uow.returns.list_by_creator(creator_id, limit=limit, offset=offset)
            return await uow.returns.list_by_customer(customer_id, limit=limit, offset=offset)
