# =========================================================
# SETTLEMENT RECORDER
# - Records a captured gateway order as Sale + SaleItems
# - Sale key = gateway order id (primary key, one sale per order)
# - Sale and items committed together
# - Sales counters incremented afterwards, best-effort:
#   a failed increment never rolls back or fails the sale
# =========================================================

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AlreadySettled, SettlementFailed, SettlementPersistenceError
from app.core.money import MINOR_UNIT, to_money
from app.models.products import Product
from app.models.sale_items import SaleItem
from app.models.sales import Sale
from app.payments.port import CaptureResult, GatewayOrderDetails

logger = logging.getLogger("app")


@dataclass
class SettlementResult:
    sale: Sale
    counter_failures: list[int] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.counter_failures)


class SalesCounter:
    """Per-product units-sold tally, one atomic UPDATE per increment."""

    def __init__(self, db: Session):
        self.db = db

    def increment(self, product_id: int, quantity: int) -> None:
        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(total_sales=Product.total_sales + quantity)
        )
        self.db.commit()

        if result.rowcount == 0:
            raise LookupError(f"Product {product_id} not found")


class SettlementRecorder:
    def __init__(self, db: Session, counter: SalesCounter | None = None):
        self.db = db
        self.counter = counter or SalesCounter(db)

    def find_sale(self, order_id: str) -> Sale | None:
        return self.db.query(Sale).filter(Sale.id == order_id).first()

    def settle(
        self,
        order_id: str,
        capture: CaptureResult,
        details: GatewayOrderDetails,
        farm_id: int,
    ) -> SettlementResult:
        if not capture.completed:
            raise SettlementFailed(order_id, f"Refusing to settle order {order_id} with status {capture.status}")

        existing = self.find_sale(order_id)
        if existing:
            raise AlreadySettled(existing)

        sale = self._build_sale(order_id, capture, details, farm_id)

        try:
            self.db.add(sale)
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent capture of the same order
            self.db.rollback()
            existing = self.find_sale(order_id)
            if existing:
                raise AlreadySettled(existing)
            logger.critical(f"Payment captured but sale not recorded for order {order_id} (integrity error)")
            raise SettlementPersistenceError(order_id, "Failed to save order details to the database.")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.critical(f"Payment captured but sale not recorded for order {order_id}: {e}")
            raise SettlementPersistenceError(order_id, "Failed to save order details to the database.")

        self.db.refresh(sale)

        logger.info(
            f"Sale recorded for order {order_id}: farm {farm_id}, "
            f"gross {sale.gross_amount}, fee {sale.gateway_fee}, items {len(sale.items)}"
        )

        counter_failures = self._increment_counters(sale)

        return SettlementResult(sale=sale, counter_failures=counter_failures)

    def _build_sale(self, order_id, capture, details, farm_id) -> Sale:
        gross = to_money(details.gross_amount)

        if details.gateway_fee is None:
            logger.warning(f"No fee breakdown for order {order_id}, recording fee as 0.00")
            fee = Decimal("0.00")
        else:
            fee = to_money(details.gateway_fee)

        try:
            items = [
                SaleItem(
                    product_id=int(line.sku),
                    product_name=line.name,
                    unit_price=to_money(line.unit_price),
                    quantity=line.quantity,
                    subtotal=to_money(line.unit_price * line.quantity),
                )
                for line in details.line_items
            ]
        except ValueError as e:
            logger.critical(f"Payment captured but order {order_id} has unreadable line items: {e}")
            raise SettlementFailed(order_id, "Captured order has unreadable line items.")

        items_total = sum((item.subtotal for item in items), Decimal("0.00"))
        if abs(items_total - gross) > MINOR_UNIT:
            logger.error(
                f"Order {order_id} line items total {items_total} does not match "
                f"captured amount {gross}; recording captured amount"
            )

        return Sale(
            id=order_id,
            farm_id=farm_id,
            gross_amount=gross,
            gateway_fee=fee,
            net_amount=gross - fee,
            currency=details.currency,
            payer_email=capture.payer_email or details.payer_email,
            raw_gateway_payload=details.raw,
            counters_synced=False,
            items=items,
        )

    def _increment_counters(self, sale: Sale) -> list[int]:
        failures = []
        order_id = sale.id
        lines = [(item.product_id, item.quantity) for item in sale.items]

        for product_id, quantity in lines:
            try:
                self.counter.increment(product_id, quantity)
            except (SQLAlchemyError, LookupError) as e:
                self.db.rollback()
                failures.append(product_id)
                logger.error(
                    f"Error updating total_sales for product {product_id} "
                    f"(order {order_id}): {e}"
                )

        if failures:
            return failures

        try:
            sale.counters_synced = True
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Unable to flag counters synced for order {order_id}: {e}")

        return failures
