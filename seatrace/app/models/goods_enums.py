"""
Goods lifecycle enumerations.
"""

import enum


class GoodsStatus(str, enum.Enum):
    """
    Goods status enumeration.

    Status flow (one-way, no cancellation):
        PRODUCED → SHIPPED → INSPECTED → DELIVERED
    """
    PRODUCED = "PRODUCED"
    SHIPPED = "SHIPPED"
    INSPECTED = "INSPECTED"
    DELIVERED = "DELIVERED"

    @property
    def rank(self) -> int:
        """Position in the lifecycle, starting at 1 (matches the on-chain status code)."""
        return _STATUS_ORDER.index(self) + 1

    def precedes(self, other: "GoodsStatus") -> bool:
        return self.rank < other.rank

    def next_status(self):
        """Return the immediate successor, or None for the terminal status."""
        if self.is_terminal:
            return None
        return _STATUS_ORDER[self.rank]

    @property
    def is_terminal(self) -> bool:
        return self is GoodsStatus.DELIVERED

    @classmethod
    def from_rank(cls, rank: int) -> "GoodsStatus":
        if rank < 1 or rank > len(_STATUS_ORDER):
            raise ValueError(f"Unknown goods status code: {rank}")
        return _STATUS_ORDER[rank - 1]


_STATUS_ORDER = [
    GoodsStatus.PRODUCED,
    GoodsStatus.SHIPPED,
    GoodsStatus.INSPECTED,
    GoodsStatus.DELIVERED,
]

_STATUS_TEXT = {
    GoodsStatus.PRODUCED: "Produced",
    GoodsStatus.SHIPPED: "Shipped",
    GoodsStatus.INSPECTED: "Inspected",
    GoodsStatus.DELIVERED: "Delivered",
}


def status_text(status) -> str:
    """Human-readable label for a goods status."""
    if status is None:
        return ""
    return _STATUS_TEXT[GoodsStatus(status)]


class Stage(str, enum.Enum):
    """Lifecycle stage, one record type each."""
    PRODUCTION = "production"
    TRANSPORT = "transport"
    INSPECTION = "inspection"
    DELIVERY = "delivery"


class ChainConfirmation(str, enum.Enum):
    """
    Chain confirmation state of a stage record.

    PENDING: persisted, chain submission in flight
    FAILED: last submission failed, eligible for retry
    CONFIRMED: transaction hash recorded
    """
    PENDING = "PENDING"
    FAILED = "FAILED"
    CONFIRMED = "CONFIRMED"
