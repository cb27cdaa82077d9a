"""Session-scoped shopping cart held in memory by the storefront client."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from storefront.pricing import PriceLine


@dataclass
class CartItem:
    product: dict[str, Any]
    qty: int
    color: Optional[str] = None
    kind: str = "product"

    @property
    def product_id(self) -> str:
        return self.product["id"]

    @property
    def unit_price(self) -> float:
        if self.kind == "offer":
            return float(self.product.get("combo_price", 0))
        return float(self.product.get("price", 0))

    def get_subtotal(self) -> float:
        return self.unit_price * self.qty


class Cart:
    def __init__(self) -> None:
        self.items: List[CartItem] = []

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[CartItem]:
        return iter(self.items)

    def _find(self, product_id: str, color: Optional[str]) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id and item.color == color:
                return item
        return None

    def add(self, product: dict[str, Any], qty: int = 1, color: Optional[str] = None, kind: str = "product") -> CartItem:
        """Add a product; the same product and color merge into one line."""
        if qty < 1:
            raise ValueError("Quantity must be at least 1")
        existing = self._find(product["id"], color)
        if existing:
            existing.qty += qty
            return existing
        item = CartItem(product=product, qty=qty, color=color, kind=kind)
        self.items.append(item)
        return item

    def remove(self, product_id: str, color: Optional[str] = None) -> None:
        # Without a color every line of the product goes
        self.items = [
            item for item in self.items
            if not (item.product_id == product_id and (color is None or item.color == color))
        ]

    def update_quantity(self, product_id: str, qty: int, color: Optional[str] = None) -> None:
        if qty <= 0:
            self.remove(product_id, color)
            return
        for item in self.items:
            if item.product_id == product_id and (color is None or item.color == color):
                item.qty = qty

    def clear(self) -> None:
        self.items = []

    @property
    def subtotal(self) -> float:
        return round(sum(item.get_subtotal() for item in self.items), 2)

    def lines(self) -> List[PriceLine]:
        return [PriceLine(unit_price=item.unit_price, qty=item.qty) for item in self.items]

    def to_order_items(self) -> List[dict[str, Any]]:
        return [
            {"kind": item.kind, "product_id": item.product_id, "qty": item.qty, "color": item.color}
            for item in self.items
        ]
