# =========================================================
# PRICE RESOLVER
# - Server-side pricing only: caller prices are never read
# - All-or-nothing: one unknown product fails the whole cart
# - Round-half-up to the minor unit, same as the gateway amount
# =========================================================

from dataclasses import dataclass
from decimal import Decimal

from pydantic import TypeAdapter, ValidationError

from app.core.exceptions import EmptyCart, InvalidCart, UnknownProduct
from app.core.money import to_money
from app.schemas.market import CartItem

_cart_adapter = TypeAdapter(list[CartItem])


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


@dataclass(frozen=True)
class PricedCart:
    lines: tuple[PricedLine, ...]
    total: Decimal


def parse_cart(cart) -> list[CartItem]:
    if not isinstance(cart, (list, tuple)) or len(cart) == 0:
        raise EmptyCart()

    try:
        return _cart_adapter.validate_python(list(cart))
    except ValidationError as e:
        error = e.errors()[0]
        position = error["loc"][0] if error["loc"] else "?"
        field = ".".join(str(part) for part in error["loc"][1:]) or "item"
        raise InvalidCart(f"Invalid cart item at position {position}: {field}: {error['msg']}")


class PriceResolver:
    def __init__(self, catalog):
        self.catalog = catalog

    def resolve(self, cart) -> PricedCart:
        items = parse_cart(cart)

        entries = self.catalog.lookup(item.product_id for item in items)

        missing = {item.product_id for item in items if item.product_id not in entries}
        if missing:
            raise UnknownProduct(missing)

        lines = []
        for item in items:
            entry = entries[item.product_id]
            # Line totals use the rounded unit price the gateway will see
            unit_price = to_money(entry.unit_price)
            lines.append(
                PricedLine(
                    product_id=entry.product_id,
                    name=entry.name,
                    unit_price=unit_price,
                    quantity=item.quantity,
                    line_total=to_money(unit_price * item.quantity),
                )
            )

        total = to_money(sum((line.line_total for line in lines), Decimal("0.00")))

        if total <= 0:
            raise InvalidCart("Calculated total amount must be positive.")

        return PricedCart(lines=tuple(lines), total=total)
