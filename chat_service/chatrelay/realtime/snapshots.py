# chatrelay/realtime/snapshots.py
from chatrelay.domain.events import MessageSnapshot
from chatrelay.domain.exceptions import RelayError
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.uow import UoWModel
from chatrelay.realtime.delivery import DeliveryOutcome
from chatrelay.realtime.router import Decision


def message_snapshot(message: UoWModel) -> MessageSnapshot:
    return MessageSnapshot.model_validate(message._model)


def delivery_summary(
    decision: Decision, outcomes: list[DeliveryOutcome]
) -> schemas.Delivery:
    return schemas.Delivery(
        event_id=decision.envelope.event_id if decision.envelope else None,
        state=decision.state.value,
        targets=len(decision.targets),
        delivered=sum(1 for outcome in outcomes if outcome.delivered),
    )


def raise_if_rejected(decision: Decision) -> Decision:
    if decision.rejected:
        error: RelayError = decision.error
        raise error
    return decision
