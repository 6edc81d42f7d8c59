"""
Poll Cycle Context for PuppetDB Service Discovery

The driver opens one context per poll cycle. Log records emitted inside it
carry the cycle's correlation ID, its sequence number and the output being
written, so every line of one fetch/transform/write pass can be grouped.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

_current: contextvars.ContextVar[Optional["CycleInfo"]] = contextvars.ContextVar(
    "prometheus_puppetdb_cycle", default=None
)

NO_CORRELATION_ID = "N/A"


@dataclass(frozen=True)
class CycleInfo:
    correlation_id: str
    cycle: Optional[int] = None
    output: Optional[str] = None


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def current_cycle() -> Optional[CycleInfo]:
    """The innermost active cycle, or None outside of any cycle."""
    return _current.get()


def get_correlation_id() -> Optional[str]:
    info = _current.get()
    return info.correlation_id if info else None


def clear_cycle() -> None:
    _current.set(None)


@contextmanager
def cycle_context(
    cycle: Optional[int] = None,
    output: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> Iterator[CycleInfo]:
    """
    Make a cycle current for the duration of the block.

    Args:
        cycle: Sequence number of the poll cycle
        output: Name of the output written by the cycle
        correlation_id: ID to use; a new one is generated when omitted

    Yields:
        The active CycleInfo. The enclosing cycle (if any) is current again
        once the block exits, also on error.
    """
    info = CycleInfo(correlation_id or generate_correlation_id(), cycle, output)
    token = _current.set(info)
    try:
        yield info
    finally:
        _current.reset(token)


class CycleContextFilter(logging.Filter):
    """
    Stamp records with the current cycle.

    `correlation_id` is always set. `cycle` and `output` are only set when a
    cycle provides them and the caller did not pass its own via `extra`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        info = _current.get()
        if info is None:
            record.correlation_id = NO_CORRELATION_ID
            return True

        record.correlation_id = info.correlation_id
        if info.cycle is not None and not hasattr(record, "cycle"):
            record.cycle = info.cycle
        if info.output is not None and not hasattr(record, "output"):
            record.output = info.output
        return True
