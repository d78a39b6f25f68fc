"""
The per-candidate state machine.

Every candidate starts in `DISCOVERED` and moves through sampling, full
encoding, duration validation and size comparison until it reaches a terminal
state. `transition()` is a pure function: given a state and an event it returns
the next state and, for terminal states, the ledger disposition to write.
The orchestrator owns all side effects.
"""
from enum import Enum
from typing import Dict, Optional, Tuple

from .exceptions import InvalidTransition


class Disposition(str, Enum):
    """The ledger a terminal state is recorded in."""

    ENCODED = "encoded"
    FAILED = "failed"


class EncodeState(str, Enum):
    DISCOVERED = "discovered"
    FAST_SKIPPED = "fast_skipped"
    SAMPLING = "sampling"
    ESTIMATION_FAILED = "estimation_failed"
    SKIPPED_INSUFFICIENT_BENEFIT = "skipped_insufficient_benefit"
    FULL_ENCODING = "full_encoding"
    ENCODE_FAILED = "encode_failed"
    ENCODE_SUCCEEDED = "encode_succeeded"
    DURATION_VALIDATING = "duration_validating"
    DURATION_REJECTED = "duration_rejected"
    DURATION_VALIDATED = "duration_validated"
    SIZE_COMPARING = "size_comparing"
    REPLACED = "replaced"
    RETAINED_LARGER = "retained_larger"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_DISPOSITIONS


class EncodeEvent(str, Enum):
    LOW_BITRATE = "low_bitrate"
    BITRATE_OK = "bitrate_ok"
    SAMPLE_FAILED = "sample_failed"
    INSUFFICIENT_BENEFIT = "insufficient_benefit"
    BENEFIT_PROJECTED = "benefit_projected"
    ENCODE_FAILED = "encode_failed"
    ENCODE_SUCCEEDED = "encode_succeeded"
    VALIDATION_STARTED = "validation_started"
    DURATION_MISMATCH = "duration_mismatch"
    DURATION_MATCHED = "duration_matched"
    COMPARISON_STARTED = "comparison_started"
    SMALLER = "smaller"
    NOT_SMALLER = "not_smaller"


TERMINAL_DISPOSITIONS: Dict[EncodeState, Disposition] = {
    EncodeState.FAST_SKIPPED: Disposition.ENCODED,
    EncodeState.SKIPPED_INSUFFICIENT_BENEFIT: Disposition.ENCODED,
    EncodeState.REPLACED: Disposition.ENCODED,
    EncodeState.RETAINED_LARGER: Disposition.ENCODED,
    EncodeState.ESTIMATION_FAILED: Disposition.FAILED,
    EncodeState.ENCODE_FAILED: Disposition.FAILED,
    EncodeState.DURATION_REJECTED: Disposition.FAILED,
}

_TRANSITIONS: Dict[Tuple[EncodeState, EncodeEvent], EncodeState] = {
    (EncodeState.DISCOVERED, EncodeEvent.LOW_BITRATE): EncodeState.FAST_SKIPPED,
    (EncodeState.DISCOVERED, EncodeEvent.BITRATE_OK): EncodeState.SAMPLING,
    (EncodeState.SAMPLING, EncodeEvent.SAMPLE_FAILED): EncodeState.ESTIMATION_FAILED,
    (EncodeState.SAMPLING, EncodeEvent.INSUFFICIENT_BENEFIT): EncodeState.SKIPPED_INSUFFICIENT_BENEFIT,
    (EncodeState.SAMPLING, EncodeEvent.BENEFIT_PROJECTED): EncodeState.FULL_ENCODING,
    (EncodeState.FULL_ENCODING, EncodeEvent.ENCODE_FAILED): EncodeState.ENCODE_FAILED,
    (EncodeState.FULL_ENCODING, EncodeEvent.ENCODE_SUCCEEDED): EncodeState.ENCODE_SUCCEEDED,
    (EncodeState.ENCODE_SUCCEEDED, EncodeEvent.VALIDATION_STARTED): EncodeState.DURATION_VALIDATING,
    (EncodeState.DURATION_VALIDATING, EncodeEvent.DURATION_MISMATCH): EncodeState.DURATION_REJECTED,
    (EncodeState.DURATION_VALIDATING, EncodeEvent.DURATION_MATCHED): EncodeState.DURATION_VALIDATED,
    (EncodeState.DURATION_VALIDATED, EncodeEvent.COMPARISON_STARTED): EncodeState.SIZE_COMPARING,
    (EncodeState.SIZE_COMPARING, EncodeEvent.SMALLER): EncodeState.REPLACED,
    (EncodeState.SIZE_COMPARING, EncodeEvent.NOT_SMALLER): EncodeState.RETAINED_LARGER,
}


def transition(
    state: EncodeState, event: EncodeEvent
) -> Tuple[EncodeState, Optional[Disposition]]:
    """
    Computes the next state of a candidate.

    Args:
        state: The current state.
        event: The outcome of the work done in that state.

    Returns:
        A tuple of the next state and the ledger disposition to record, which
        is `None` unless the next state is terminal.

    Raises:
        InvalidTransition: If `state` does not accept `event`.
    """
    try:
        next_state = _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(
            f"Event '{event.value}' is not valid in state '{state.value}'"
        ) from None
    return next_state, TERMINAL_DISPOSITIONS.get(next_state)
