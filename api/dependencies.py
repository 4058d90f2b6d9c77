"""
API依赖项 - 组装应用服务
"""
from application.services.order_service import OrderApplicationService
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_order_service() -> OrderApplicationService:
    return OrderApplicationService(uow_factory=SQLAlchemyUnitOfWork)
