"""Shopping cart held on the client: line items waiting for checkout.

The cart is pure local state with a storage side-channel. It never talks to
the network; checkout reads ``lines`` and hands them to the initiator.

Adding an item id that is already present merges the two lines (quantities
summed, metadata shallow-merged), which also makes a repeated "add to cart"
safe to retry.
"""

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Any

import structlog

from ordering.cart.storage import CartStorage, MemoryCartStorage

logger = structlog.get_logger(__name__)

STORAGE_KEY = "cart:v1"


@dataclass(frozen=True)
class CartLine:
    item_id: str
    name: str
    unit_price_minor_units: int
    quantity: int = 1
    seller_id: str | None = None
    image: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def key_for(product_id: str, variant_id: str | None = None) -> str:
        """Stable item id: the product id, qualified by variant when there is one."""
        return f"{product_id}:{variant_id}" if variant_id else str(product_id)

    @property
    def product_id(self) -> str:
        return str(self.metadata.get("product_id") or self.item_id.split(":", 1)[0])

    @property
    def slug(self) -> str | None:
        return self.metadata.get("slug") or None

    @property
    def line_total(self) -> int:
        return self.unit_price_minor_units * self.quantity

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            item_id=str(data["item_id"]),
            name=str(data["name"]),
            unit_price_minor_units=int(data["unit_price_minor_units"]),
            quantity=max(1, int(data.get("quantity") or 1)),
            seller_id=data.get("seller_id") or None,
            image=data.get("image") or None,
            metadata=dict(data.get("metadata") or {}),
        )


class CartStore:
    """Client-side cart with best-effort persistence."""

    def __init__(self, storage: CartStorage | None = None) -> None:
        self.storage = storage or MemoryCartStorage()
        self._lines: list[CartLine] = self._read()

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(self, line: CartLine) -> CartLine:
        """Add a line, merging into an existing line with the same item id."""
        quantity = max(1, line.quantity)

        for index, existing in enumerate(self._lines):
            if existing.item_id == line.item_id:
                merged = replace(
                    existing,
                    quantity=existing.quantity + quantity,
                    seller_id=line.seller_id or existing.seller_id,
                    metadata={**existing.metadata, **line.metadata},
                )
                self._lines[index] = merged
                self._write()
                return merged

        added = replace(line, quantity=quantity, metadata=dict(line.metadata))
        self._lines.append(added)
        self._write()
        return added

    def remove_item(self, item_id: str) -> None:
        remaining = [line for line in self._lines if line.item_id != item_id]
        if len(remaining) != len(self._lines):
            self._lines = remaining
            self._write()

    def clear(self) -> None:
        self._lines = []
        self._write()

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def total(self) -> int:
        return sum(line.line_total for line in self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    # -------------------------------------------------------------------
    # Storage side-channel
    # -------------------------------------------------------------------
    def _read(self) -> list[CartLine]:
        try:
            raw = self.storage.read(STORAGE_KEY)
            if not raw:
                return []
            return [CartLine.from_dict(item) for item in json.loads(raw)]
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("Discarding unreadable cart data", error=str(exc))
            return []

    def _write(self) -> None:
        try:
            self.storage.write(STORAGE_KEY, json.dumps([asdict(line) for line in self._lines]))
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Cart could not be persisted", error=str(exc))
