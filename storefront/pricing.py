"""
Checkout pricing: subtotal, zone delivery charge and one optional coupon.

Everything here is pure; callers load catalog data and pass it in.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from storefront.config import settings


@dataclass(frozen=True)
class PriceReduction:
    code: str
    amount: float
    type: str = field(default="price_reduction", init=False)


@dataclass(frozen=True)
class FreeDeliveryInside:
    code: str
    type: str = field(default="free_delivery_inside", init=False)


@dataclass(frozen=True)
class FreeDeliveryOutside:
    code: str
    type: str = field(default="free_delivery_outside", init=False)


Coupon = Union[PriceReduction, FreeDeliveryInside, FreeDeliveryOutside]


@dataclass(frozen=True)
class PriceLine:
    unit_price: float
    qty: int


@dataclass(frozen=True)
class Quote:
    subtotal: float
    delivery_charge: float
    discount: float
    total: float
    applied_coupon: Optional[Coupon] = None
    coupon_savings: float = 0.0

    def applied_coupon_record(self) -> Optional[dict[str, Any]]:
        if self.applied_coupon is None:
            return None
        return {
            "code": self.applied_coupon.code,
            "type": self.applied_coupon.type,
            "discount_amount": self.coupon_savings,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "delivery_charge": self.delivery_charge,
            "discount": self.discount,
            "total": self.total,
            "applied_coupon": self.applied_coupon_record(),
        }


def delivery_charges() -> dict[str, float]:
    return {
        "inside_dhaka": settings.DELIVERY_CHARGE_INSIDE_DHAKA,
        "outside_dhaka": settings.DELIVERY_CHARGE_OUTSIDE_DHAKA,
    }


def delivery_charge_for(zone: str, charges: Optional[dict[str, float]] = None) -> float:
    charges = charges or delivery_charges()
    if zone not in charges:
        raise ValueError(f"Unknown delivery zone {zone!r}")
    return float(charges[zone])


def _normalize(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def resolve_coupon(code: Optional[str], bundles: Iterable[Optional[dict[str, Any]]]) -> Optional[Coupon]:
    """Match a customer-entered code against the coupon bundles of the items bought.

    Unknown or blank codes resolve to None rather than failing the checkout.
    """
    wanted = _normalize(code)
    if not wanted:
        return None
    for bundle in bundles:
        if not bundle:
            continue
        if _normalize(bundle.get("inside_dhaka_code")) == wanted:
            return FreeDeliveryInside(code=wanted)
        if _normalize(bundle.get("outside_dhaka_code")) == wanted:
            return FreeDeliveryOutside(code=wanted)
        if _normalize(bundle.get("price_reduction_code")) == wanted:
            amount = float(bundle.get("price_reduction_amount") or 0)
            if amount > 0:
                return PriceReduction(code=wanted, amount=amount)
    return None


def quote(
    lines: Iterable[PriceLine],
    zone: str,
    coupon: Optional[Coupon] = None,
    charges: Optional[dict[str, float]] = None,
) -> Quote:
    subtotal = round(sum(line.unit_price * line.qty for line in lines), 2)
    delivery_charge = delivery_charge_for(zone, charges)
    discount = 0.0
    savings = 0.0
    applied: Optional[Coupon] = None

    if coupon is None:
        pass
    elif isinstance(coupon, PriceReduction):
        discount = round(min(subtotal, max(0.0, coupon.amount)), 2)
        savings = discount
        applied = coupon
    elif isinstance(coupon, FreeDeliveryInside):
        if zone == "inside_dhaka":
            savings, delivery_charge = delivery_charge, 0.0
            applied = coupon
    elif isinstance(coupon, FreeDeliveryOutside):
        if zone == "outside_dhaka":
            savings, delivery_charge = delivery_charge, 0.0
            applied = coupon
    else:
        raise TypeError(f"Unsupported coupon {coupon!r}")

    total = round(max(0.0, subtotal - discount) + delivery_charge, 2)
    return Quote(
        subtotal=subtotal,
        delivery_charge=delivery_charge,
        discount=discount,
        total=total,
        applied_coupon=applied,
        coupon_savings=savings,
    )
