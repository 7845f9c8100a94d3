"""Reassembly of streamed tool-call fragments into complete calls."""

from typing import Callable, Dict, List, Optional, Tuple

from .logger import get_logger
from .messages import ToolCall
from .wire import ToolCallDelta

__all__ = ["ToolCallAssembler"]

_log = get_logger(__name__)

EMPTY_ARGUMENTS = "{}"


class _OpenCall:
    __slots__ = ("slot", "id", "name", "parts")

    def __init__(self, slot: int, call_id: str, name: str):
        self.slot = slot
        self.id = call_id
        self.name = name
        self.parts: List[str] = []


class ToolCallAssembler:
    """Accumulates one turn's tool-call fragments.

    Each declared call gets a slot from a per-turn counter in first-seen
    order. Fragments are routed to a slot through their wire address
    (choice index plus the service ``index``, or the fragment position when
    the service omits it). Only when an address is unknown does routing fall
    back to matching by function name.

    Calls declared without an id get one from ``next_id``. Pass the
    session-wide supplier so generated ids never repeat across requests.
    """

    def __init__(self, next_id: Optional[Callable[[], str]] = None):
        self._next_id = next_id or self._local_id
        self._calls: Dict[int, _OpenCall] = {}
        self._by_address: Dict[Tuple[int, int], int] = {}
        self._next_slot = 0
        self._anonymous = 0

    def __len__(self) -> int:
        return len(self._calls)

    @staticmethod
    def _address(fragment: ToolCallDelta) -> Tuple[int, int]:
        position = fragment.index if fragment.index is not None else fragment.position
        return (fragment.choice_index, position)

    def _open(self, call_id: str, name: str) -> _OpenCall:
        call = _OpenCall(self._next_slot, call_id, name)
        self._calls[call.slot] = call
        self._next_slot += 1
        return call

    def _local_id(self) -> str:
        self._anonymous += 1
        return f"call_{self._anonymous}"

    def _match_by_name(self, name: Optional[str]) -> Optional[_OpenCall]:
        if not name:
            return None
        for slot in sorted(self._calls):
            if self._calls[slot].name == name:
                return self._calls[slot]
        return None

    def add(self, fragment: ToolCallDelta):
        address = self._address(fragment)
        slot = self._by_address.get(address)
        current = self._calls.get(slot) if slot is not None else None

        if fragment.id:
            if current is not None and current.id == fragment.id:
                call = current
            elif current is not None:
                # A second id at an occupied address: the first id keeps the
                # address unless the fragment names no call we already hold.
                call = self._match_by_name(fragment.name)
                if call is None:
                    call = self._open(fragment.id, fragment.name or "")
                    self._by_address[address] = call.slot
            else:
                call = self._open(fragment.id, fragment.name or "")
                self._by_address[address] = call.slot
        elif current is not None:
            call = current
        else:
            call = self._match_by_name(fragment.name)
            if call is None:
                if not fragment.name:
                    _log.warning("Dropping tool-call fragment for unknown slot %s", address)
                    return
                call = self._open(self._next_id(), fragment.name)
            self._by_address[address] = call.slot

        if fragment.name and not call.name:
            call.name = fragment.name
        if fragment.arguments:
            call.parts.append(fragment.arguments)

    def finalize(self) -> List[ToolCall]:
        """Return declared calls in declaration order with full arguments."""
        result: List[ToolCall] = []
        for slot in sorted(self._calls):
            call = self._calls[slot]
            arguments = "".join(call.parts)
            if not arguments.strip():
                arguments = EMPTY_ARGUMENTS
            result.append(ToolCall(id=call.id, name=call.name, arguments=arguments))
            _log.debug("Finalized tool call id=%s name=%s args=%.200s", call.id, call.name, arguments)
        return result

    def reset(self):
        self._calls.clear()
        self._by_address.clear()
        self._next_slot = 0
        self._anonymous = 0
