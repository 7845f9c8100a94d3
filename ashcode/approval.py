"""Approval gate: decides whether a batch of tool calls may run unattended."""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple, Union

from .logger import get_logger
from .messages import ToolCall

__all__ = ["ApprovalDecision", "ApprovalGate", "PendingApprovalSet"]

_log = get_logger(__name__)


@dataclass
class PendingApprovalSet:
    """Calls from one finished turn waiting on a single allow/deny decision."""
    calls: List[ToolCall] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.calls)

    def __iter__(self):
        return iter(self.calls)

    def names(self) -> List[str]:
        return [c.name for c in self.calls]

    def clear(self):
        self.calls = []


@dataclass(frozen=True)
class ApprovalDecision:
    auto_approved: bool
    blocked: Tuple[str, ...] = ()

    @property
    def requires_human(self) -> bool:
        return not self.auto_approved


class ApprovalGate:
    """Pure decision over pending calls and the auto-approve allow-list.

    The decision covers the whole batch: one name outside the list blocks
    every call in it. ``auto_approve`` may be a callable, read on every
    evaluation, so a list edited mid-session applies to the next batch.
    """

    def __init__(self, auto_approve: Union[Iterable[str], Callable[[], Iterable[str]]] = (),
                 approve_all: bool = False):
        if callable(auto_approve):
            self._allow_list = auto_approve
        else:
            fixed = frozenset(auto_approve)
            self._allow_list = lambda: fixed
        self.approve_all = approve_all

    @property
    def auto_approve(self) -> frozenset:
        return frozenset(self._allow_list())

    def evaluate(self, calls: Iterable[ToolCall]) -> ApprovalDecision:
        if self.approve_all:
            return ApprovalDecision(auto_approved=True)
        allowed = self.auto_approve
        blocked = []
        for call in calls:
            if call.name not in allowed and call.name not in blocked:
                blocked.append(call.name)
        return ApprovalDecision(auto_approved=not blocked, blocked=tuple(blocked))

    def resolve(self, pending: PendingApprovalSet, approved: Optional[bool]) -> bool:
        """Apply a human decision to ``pending``; a rejection empties it."""
        if approved:
            _log.info("Tool batch approved: %s", ", ".join(pending.names()))
            return True
        _log.info("Tool batch rejected: %s", ", ".join(pending.names()))
        pending.clear()
        return False
