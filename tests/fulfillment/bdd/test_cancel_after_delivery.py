"""BDD tests for cancellation attempts on a delivered order."""

from pytest_bdd import parsers, scenarios, when
from shared.errors import AlreadyTerminalError, InvalidTransitionError

scenarios("features/cancel_after_delivery.feature")


@when(parsers.cfparse('the order is cancelled with reason "{reason}"'))
def cancel_order(orchestrator, order, error, reason):
    try:
        orchestrator.advance_order(order.id, "cancelled", reason=reason)
    except InvalidTransitionError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the delivery is cancelled with reason "{reason}"'))
def cancel_delivery(orchestrator, delivery, error, reason):
    try:
        orchestrator.cancel(delivery.id, reason)
    except AlreadyTerminalError as exc:
        error["exc"] = exc
