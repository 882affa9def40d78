"""
SQLAlchemy order repository (``sales_modules.order.repository``).

Responsibility:
    Implements the ``OrderRepository`` protocol over the ORM models in
    ``sales_modules.order.orm``. Loads orders into domain records and
    writes them back; catalog references are resolved through a
    ``ReferenceCatalog``.

Architecture position:
    **Modules layer** -- persistence adapter. Never commits: the calling
    service owns the transaction boundary.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sales_kernel.domain.order import Order
from sales_kernel.exceptions import OrderNotFoundError
from sales_kernel.logging_config import get_logger
from sales_modules.order.orm import SaleOrderModel
from sales_modules.order.providers import ReferenceCatalog

logger = get_logger("modules.order.repository")


class SqlAlchemyOrderRepository:
    """
    Order persistence on a SQLAlchemy session.

    Contract:
        ``save`` replaces the stored lines, tax lines and advance payments
        with the ones on the domain order. ``find`` raises
        OrderNotFoundError for an unknown id.
    """

    def __init__(self, session: Session, catalog: ReferenceCatalog, actor_id: UUID):
        self._session = session
        self._catalog = catalog
        self._actor_id = actor_id

    def _model(self, order_id: UUID) -> SaleOrderModel:
        model = self._session.get(SaleOrderModel, order_id)
        if model is None:
            raise OrderNotFoundError(order_id)
        return model

    def find(self, order_id: UUID) -> Order:
        return self._model(order_id).to_dto(self._catalog)

    def find_by_reference(self, reference: str) -> list[Order]:
        models = self._session.scalars(
            select(SaleOrderModel).where(SaleOrderModel.reference == reference)
        ).all()
        return [model.to_dto(self._catalog) for model in models]

    def save(self, order: Order) -> None:
        model = self._session.get(SaleOrderModel, order.id)
        if model is None:
            self._session.add(SaleOrderModel.from_dto(order, self._actor_id))
            logger.debug("sale_order_inserted", extra={"order_id": str(order.id)})
        else:
            model.lines.clear()
            model.tax_lines.clear()
            model.advance_payments.clear()
            self._session.flush()
            model.apply_header(order)
            model.replace_children(order, self._actor_id)
            model.updated_by_id = self._actor_id
            logger.debug("sale_order_updated", extra={"order_id": str(order.id)})
        self._session.flush()

    def remove(self, order: Order) -> None:
        self._session.delete(self._model(order.id))
        self._session.flush()
        logger.debug("sale_order_removed", extra={"order_id": str(order.id)})
