"""
Tests for `services/settlement.py`.

Covers:
- sale header and items come from the captured gateway data
- one sale per gateway order, including the insert race
- sales counters are best-effort and never undo a recorded sale
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import AlreadySettled, SettlementFailed, SettlementPersistenceError
from app.models.products import Product
from app.models.sale_items import SaleItem
from app.models.sales import Sale
from app.payments.port import CapturedLine, CaptureResult, GatewayOrderDetails
from app.services.settlement import SalesCounter, SettlementRecorder


def make_capture(order_id="ORDER-1", status="COMPLETED"):
    return CaptureResult(order_id=order_id, status=status, payer_email="buyer@example.com", raw={"id": order_id})


def make_details(order_id, lines, gross=None, fee="5.00"):
    captured = tuple(
        CapturedLine(sku=str(sku), name=name, unit_price=Decimal(price), quantity=qty)
        for sku, name, price, qty in lines
    )
    if gross is None:
        gross = sum((line.unit_price * line.quantity for line in captured), Decimal("0"))

    return GatewayOrderDetails(
        order_id=order_id,
        status="COMPLETED",
        gross_amount=Decimal(gross),
        gateway_fee=Decimal(fee) if fee is not None else None,
        currency="PHP",
        payer_email="details@example.com",
        line_items=captured,
        raw={"id": order_id, "status": "COMPLETED"},
    )


class FailingCounter:
    def __init__(self):
        self.attempts = []

    def increment(self, product_id, quantity):
        self.attempts.append((product_id, quantity))
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))


def test_settle_records_sale_and_items(db_session, farm, coconut) -> None:
    details = make_details("ORDER-1", [(coconut.id, "Young Coconut", "75.00", 2)])

    result = SettlementRecorder(db_session).settle("ORDER-1", make_capture(), details, farm.id)

    sale = result.sale
    assert sale.id == "ORDER-1"
    assert sale.farm_id == farm.id
    assert sale.gross_amount == Decimal("150.00")
    assert sale.gateway_fee == Decimal("5.00")
    assert sale.net_amount == Decimal("145.00")
    assert sale.payer_email == "buyer@example.com"
    assert sale.raw_gateway_payload == {"id": "ORDER-1", "status": "COMPLETED"}
    assert len(sale.items) == 1
    item = sale.items[0]
    assert (item.product_id, item.product_name, item.quantity) == (coconut.id, "Young Coconut", 2)
    assert item.subtotal == Decimal("150.00")
    assert not result.partial


def test_item_subtotals_sum_to_gross(db_session, farm, coconut, copra) -> None:
    details = make_details(
        "ORDER-2",
        [(coconut.id, "Young Coconut", "75.00", 1), (copra.id, "Copra", "12.50", 3)],
    )

    sale = SettlementRecorder(db_session).settle("ORDER-2", make_capture("ORDER-2"), details, farm.id).sale

    total = sum((item.subtotal for item in sale.items), Decimal("0"))
    assert abs(total - sale.gross_amount) <= Decimal("0.01")


def test_counters_incremented_after_sale(db_session, farm, coconut, copra) -> None:
    details = make_details(
        "ORDER-3",
        [(coconut.id, "Young Coconut", "75.00", 2), (copra.id, "Copra", "12.50", 4)],
    )

    result = SettlementRecorder(db_session).settle("ORDER-3", make_capture("ORDER-3"), details, farm.id)

    db_session.expire_all()
    assert db_session.get(Product, coconut.id).total_sales == 2
    assert db_session.get(Product, copra.id).total_sales == 4
    assert result.sale.counters_synced is True


def test_second_settlement_is_already_settled(db_session, farm, coconut) -> None:
    details = make_details("ORDER-4", [(coconut.id, "Young Coconut", "75.00", 2)])
    recorder = SettlementRecorder(db_session)
    recorder.settle("ORDER-4", make_capture("ORDER-4"), details, farm.id)

    with pytest.raises(AlreadySettled) as exc_info:
        recorder.settle("ORDER-4", make_capture("ORDER-4"), details, farm.id)

    assert exc_info.value.sale.id == "ORDER-4"
    assert db_session.query(Sale).filter(Sale.id == "ORDER-4").count() == 1
    assert db_session.query(SaleItem).filter(SaleItem.sale_id == "ORDER-4").count() == 1
    db_session.expire_all()
    assert db_session.get(Product, coconut.id).total_sales == 2


def test_insert_race_resolves_to_already_settled(session_factory, farm, coconut, monkeypatch) -> None:
    details = make_details("ORDER-5", [(coconut.id, "Young Coconut", "75.00", 1)])

    first = session_factory()
    SettlementRecorder(first).settle("ORDER-5", make_capture("ORDER-5"), details, farm.id)

    # Second request passed its existence check before the first one committed
    second = session_factory()
    recorder = SettlementRecorder(second)
    real_find = recorder.find_sale
    lookups = []

    def stale_find(order_id):
        lookups.append(order_id)
        return None if len(lookups) == 1 else real_find(order_id)

    monkeypatch.setattr(recorder, "find_sale", stale_find)

    with pytest.raises(AlreadySettled):
        recorder.settle("ORDER-5", make_capture("ORDER-5"), details, farm.id)

    check = session_factory()
    assert check.query(Sale).filter(Sale.id == "ORDER-5").count() == 1
    assert check.query(SaleItem).filter(SaleItem.sale_id == "ORDER-5").count() == 1

    for session in (first, second, check):
        session.close()


def test_counter_failure_keeps_sale(db_session, farm, coconut) -> None:
    details = make_details("ORDER-6", [(coconut.id, "Young Coconut", "75.00", 2)])
    counter = FailingCounter()

    result = SettlementRecorder(db_session, counter=counter).settle("ORDER-6", make_capture("ORDER-6"), details, farm.id)

    assert result.partial
    assert result.counter_failures == [coconut.id]
    assert counter.attempts == [(coconut.id, 2)]

    db_session.expire_all()
    sale = db_session.get(Sale, "ORDER-6")
    assert sale is not None
    assert sale.net_amount == Decimal("145.00")
    assert sale.counters_synced is False
    assert len(sale.items) == 1
    assert db_session.get(Product, coconut.id).total_sales == 0


def test_counter_for_deleted_product_is_reported(db_session, farm, coconut) -> None:
    details = make_details("ORDER-7", [(9999, "Retired Product", "10.00", 1)])

    result = SettlementRecorder(db_session).settle("ORDER-7", make_capture("ORDER-7"), details, farm.id)

    assert result.counter_failures == [9999]
    assert result.sale.items[0].product_name == "Retired Product"


def test_incomplete_capture_is_never_settled(db_session, farm, coconut) -> None:
    details = make_details("ORDER-8", [(coconut.id, "Young Coconut", "75.00", 1)])

    with pytest.raises(SettlementFailed):
        SettlementRecorder(db_session).settle("ORDER-8", make_capture("ORDER-8", status="PENDING"), details, farm.id)

    assert db_session.query(Sale).count() == 0


def test_persistence_failure_is_reported(db_session, farm, coconut, monkeypatch) -> None:
    details = make_details("ORDER-9", [(coconut.id, "Young Coconut", "75.00", 1)])

    def broken_commit():
        raise OperationalError("INSERT INTO sales", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db_session, "commit", broken_commit)

    with pytest.raises(SettlementPersistenceError) as exc_info:
        SettlementRecorder(db_session).settle("ORDER-9", make_capture("ORDER-9"), details, farm.id)

    assert exc_info.value.order_id == "ORDER-9"
    monkeypatch.undo()
    assert db_session.query(Sale).count() == 0


def test_missing_fee_recorded_as_zero(db_session, farm, coconut) -> None:
    details = make_details("ORDER-10", [(coconut.id, "Young Coconut", "75.00", 1)], fee=None)

    sale = SettlementRecorder(db_session).settle("ORDER-10", make_capture("ORDER-10"), details, farm.id).sale

    assert sale.gateway_fee == Decimal("0.00")
    assert sale.net_amount == Decimal("75.00")


def test_gross_mismatch_still_records_captured_amount(db_session, farm, coconut) -> None:
    details = make_details("ORDER-11", [(coconut.id, "Young Coconut", "75.00", 2)], gross="140.00")

    sale = SettlementRecorder(db_session).settle("ORDER-11", make_capture("ORDER-11"), details, farm.id).sale

    assert sale.gross_amount == Decimal("140.00")
    assert sale.net_amount == Decimal("135.00")


def test_sales_counter_increment_is_atomic_update(db_session, farm, coconut) -> None:
    counter = SalesCounter(db_session)

    counter.increment(coconut.id, 3)
    counter.increment(coconut.id, 2)

    db_session.expire_all()
    assert db_session.get(Product, coconut.id).total_sales == 5

    with pytest.raises(LookupError):
        counter.increment(424242, 1)
