"""BDD tests for deliveries that fail on the road."""

from pytest_bdd import parsers, scenarios, then, when
from shared.errors import ValidationError

scenarios("features/delivery_failure.feature")


@when(parsers.cfparse('the delivery fails with reason "{reason}"'))
def delivery_fails(orchestrator, delivery, reason):
    orchestrator.advance_status(delivery.id, "failed", failure_reason=reason)


@when("the delivery is marked failed without a reason")
def delivery_fails_without_reason(orchestrator, delivery, error):
    try:
        orchestrator.advance_status(delivery.id, "failed")
    except ValidationError as exc:
        error["exc"] = exc


@then(parsers.cfparse('the customer is told "{text}"'))
def customer_told(sink, order, text):
    assert any(text in message.message for message in sink.messages_for(order.customer_id))


@then(parsers.cfparse('the vendor is told "{text}"'))
def vendor_told(sink, order, text):
    assert any(text in message.message for message in sink.messages_for(order.vendor_id))
