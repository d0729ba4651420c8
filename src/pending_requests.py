"""
WizardDAO - Pending Request Table

Submit/fulfill state machine storage. A submission commits its irreversible
consumption (asset burn or instance destruction) and registers a pending
request under the handle issued by the randomness provider. Fulfillment
pops the request exactly once.

States per request:
    SUBMITTED -> FULFILLED (terminal)
    SUBMITTED -> (never fulfilled)

There is no cancellation or timeout. A request whose randomness never
arrives keeps its consumed resources gone; stale_requests() makes such
requests visible instead of hiding them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from wizard_config import ItemIdentity, Tier
from wizard_exceptions import ProtocolError, UnknownRequestError


class RequestKind(Enum):
    """Kinds of pending request."""

    MINT = "mint"
    FUSION = "fusion"


@dataclass(frozen=True)
class MintRequest:
    """Pending mint: asset already burned, tier not yet rolled."""

    request_id: str
    holder: str
    category: int
    burned_amount: int
    submitted_at: int

    kind = RequestKind.MINT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "holder": self.holder,
            "category": self.category,
            "burned_amount": self.burned_amount,
            "submitted_at": self.submitted_at,
        }


@dataclass(frozen=True)
class FusionRequest:
    """Pending fusion: three instances already destroyed, outcome not yet rolled."""

    request_id: str
    holder: str
    identity: ItemIdentity
    consumed_shares: int
    submitted_at: int

    kind = RequestKind.FUSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "holder": self.holder,
            "category": self.identity.category,
            "source_tier": int(self.identity.tier),
            "consumed_shares": self.consumed_shares,
            "submitted_at": self.submitted_at,
        }


PendingRequest = Union[MintRequest, FusionRequest]


def request_from_dict(data: dict[str, Any]) -> PendingRequest:
    """Rebuild a pending request from its tagged dictionary form."""
    kind = RequestKind(data["kind"])
    if kind == RequestKind.MINT:
        return MintRequest(
            request_id=data["request_id"],
            holder=data["holder"],
            category=int(data["category"]),
            burned_amount=int(data["burned_amount"]),
            submitted_at=int(data["submitted_at"]),
        )
    return FusionRequest(
        request_id=data["request_id"],
        holder=data["holder"],
        identity=ItemIdentity(category=int(data["category"]), tier=Tier(int(data["source_tier"]))),
        consumed_shares=int(data["consumed_shares"]),
        submitted_at=int(data["submitted_at"]),
    )


class PendingRequestTable:
    """
    Requests keyed by randomness handle.

    A handle can be registered once and popped once; anything else is a
    protocol violation.
    """

    def __init__(self):
        self._requests: dict[str, PendingRequest] = {}
        self.total_submitted = 0
        self.total_fulfilled = 0
        # Prior entries of handles touched since begin(); None marks a new handle
        self._undo: dict[str, PendingRequest | None] | None = None
        self._counters_before = (0, 0)

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._requests

    def begin(self) -> None:
        """Start recording undo information for a transaction."""
        self._undo = {}
        self._counters_before = (self.total_submitted, self.total_fulfilled)

    def commit(self) -> None:
        self._undo = None

    def rollback(self) -> None:
        """Put back every handle touched since begin() and both counters."""
        if self._undo is None:
            return
        for request_id, prior in self._undo.items():
            if prior is None:
                self._requests.pop(request_id, None)
            else:
                self._requests[request_id] = prior
        self.total_submitted, self.total_fulfilled = self._counters_before
        self.commit()

    def _remember(self, request_id: str) -> None:
        if self._undo is not None and request_id not in self._undo:
            self._undo[request_id] = self._requests.get(request_id)

    def register(self, request: PendingRequest) -> None:
        """Store a new pending request."""
        if request.request_id in self._requests:
            raise ProtocolError(
                "Randomness provider reused a pending handle",
                action="register_request",
                details={"request_id": request.request_id},
            )
        self._remember(request.request_id)
        self._requests[request.request_id] = request
        self.total_submitted += 1

    def pop(self, request_id: str) -> PendingRequest:
        """
        Remove and return a pending request.

        Raises:
            UnknownRequestError: If the handle is unknown or already fulfilled
        """
        self._remember(request_id)
        request = self._requests.pop(request_id, None)
        if request is None:
            raise UnknownRequestError(request_id)
        self.total_fulfilled += 1
        return request

    def get(self, request_id: str) -> PendingRequest | None:
        return self._requests.get(request_id)

    def for_holder(self, holder: str) -> list[PendingRequest]:
        """Pending requests submitted by a holder, oldest first."""
        return sorted(
            (r for r in self._requests.values() if r.holder == holder),
            key=lambda r: r.submitted_at,
        )

    def stale_requests(self, now: int, max_age: int) -> list[PendingRequest]:
        """Requests still waiting for randomness after max_age seconds."""
        return sorted(
            (r for r in self._requests.values() if now - r.submitted_at >= max_age),
            key=lambda r: r.submitted_at,
        )

    def count_by_kind(self) -> dict[str, int]:
        counts = {kind.value: 0 for kind in RequestKind}
        for request in self._requests.values():
            counts[request.kind.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "requests": [r.to_dict() for r in self._requests.values()],
            "total_submitted": self.total_submitted,
            "total_fulfilled": self.total_fulfilled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingRequestTable":
        """Create from dictionary."""
        table = cls()
        for entry in data.get("requests", []):
            request = request_from_dict(entry)
            table._requests[request.request_id] = request
        table.total_submitted = int(data.get("total_submitted", len(table)))
        table.total_fulfilled = int(data.get("total_fulfilled", 0))
        return table
