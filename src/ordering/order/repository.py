"""Repository for the Order aggregate."""

from datetime import UTC, datetime

import structlog

from fulfillment.domain import fulfillment
from ordering.order.order import Order
from shared.repository import CompareAndSetRepository

logger = structlog.get_logger(__name__)


@fulfillment.repository(part_of=Order)
class OrderRepository(CompareAndSetRepository):
    """``conditional_update_status`` is the only way to change a stored order's status.

    It compares the stored status (and version, when given) and writes the
    new status plus ``changes`` in one step. It returns the updated order,
    or None when the comparison failed.
    """

    def conditional_update_status(
        self,
        order_id: str,
        expected_status: str,
        new_status: str,
        *,
        expected_version: int | None = None,
        **changes,
    ) -> Order | None:
        def expected(order):
            if order.status != expected_status:
                return False
            return expected_version is None or order._version == expected_version

        updated = self.compare_and_set(
            order_id,
            expected,
            {**changes, "status": new_status, "updated_at": datetime.now(UTC)},
        )
        if updated is not None:
            logger.debug("Order status written", order_id=order_id, status=new_status, version=updated._version)
        return updated
