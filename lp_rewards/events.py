import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from lp_rewards.errors import InconsistentEvent, InvalidLogIndex, UnknownEventKind
from lp_rewards.ledger import normalize_address

LOG = logging.getLogger(__name__)


class EventKind(Enum):
    DELTA_DEBT = "delta_debt"
    DELTA_LP = "delta_lp"
    POOL_SYNC = "pool_sync"
    UPDATE_ACCUMULATED_RATE = "update_accumulated_rate"


# Kinds that must name an account, and kinds that must not
ACCOUNT_EVENTS = (EventKind.DELTA_DEBT,)
POOL_EVENTS = (EventKind.POOL_SYNC, EventKind.UPDATE_ACCUMULATED_RATE)


@dataclass(frozen=True)
class RewardEvent:
    """A single state change of the reward distribution.

    ``address`` is ``None`` for pool level events. On ``DELTA_LP`` a missing
    address means the LP tokens were minted or burned, which changes the pool
    total supply instead of an account balance.

    ``sequence`` orders the events derived from the same log (the outgoing
    and incoming side of a transfer).
    """

    kind: EventKind
    value: float
    timestamp: Optional[int]
    log_index: Optional[int]
    address: Optional[str] = None
    sequence: int = 0

    @property
    def sort_key(self):
        return (self.timestamp, self.log_index, self.sequence)


def log_index_from_id(event_id: str) -> int:
    # Subgraph ids look like <tx hash>-<log index>
    parts = str(event_id).split("-")
    if len(parts) < 2:
        raise InvalidLogIndex(f"Invalid log index in id {event_id!r}")
    try:
        return int(parts[1])
    except ValueError:
        raise InvalidLogIndex(f"Invalid log index in id {event_id!r}") from None


def validate_event(event: RewardEvent):
    if event.timestamp is None:
        raise InconsistentEvent("Event without timestamp", event)
    if event.log_index is None:
        raise InconsistentEvent("Event without log index", event)
    if not isinstance(event.kind, EventKind):
        raise UnknownEventKind(f"Unknown event kind {event.kind!r}", event)
    if event.kind in ACCOUNT_EVENTS and not event.address:
        raise InconsistentEvent(f"{event.kind.name} event without address", event)
    if event.kind is EventKind.DELTA_LP and event.address == "":
        raise InconsistentEvent("DELTA_LP event with an empty address", event)
    if event.kind in POOL_EVENTS and event.address is not None:
        raise InconsistentEvent(f"{event.kind.name} event must not carry an address", event)


def merge_events(*streams: Iterable[RewardEvent], excluded: Iterable[str] = ()) -> List[RewardEvent]:
    """Merge event sub-streams into one list ordered by timestamp then log index.

    Events of excluded addresses are dropped altogether.
    """
    excluded = {normalize_address(a) for a in excluded}

    events = []
    dropped = 0
    for stream in streams:
        for event in stream:
            validate_event(event)
            if event.address is not None:
                address = normalize_address(event.address)
                if address in excluded:
                    dropped += 1
                    continue
                if address != event.address:
                    event = RewardEvent(
                        kind=event.kind,
                        value=event.value,
                        timestamp=event.timestamp,
                        log_index=event.log_index,
                        address=address,
                        sequence=event.sequence,
                    )
            events.append(event)

    events.sort(key=lambda e: e.sort_key)

    for previous, current in zip(events, events[1:]):
        if previous.sort_key == current.sort_key:
            raise InconsistentEvent(
                f"Ambiguous ordering, duplicate key {current.sort_key} shared with {previous!r}", current
            )

    if dropped:
        LOG.info(f"Dropped {dropped} events of excluded addresses")
    LOG.info(f"Merged {len(events)} events")
    return events
