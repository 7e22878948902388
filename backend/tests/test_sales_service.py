from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from retailpos.cart import Cart, CartLine, RegisteredCustomer, WalkInCustomer
from retailpos.extensions import db
from retailpos.models import DailyReport, DocumentSequence, InventoryLog, Product, Sale
from retailpos.services import concurrency, sales_service
from retailpos.services.sales_service import (
    InsufficientStockError,
    NotFoundError,
    PersistenceError,
    SaleError,
    process_sale,
)
from tests.conftest import SALE_TIME, reload


def _cart(lines, *, method="cash", paid="0", discount="0", customer=None):
    return Cart(
        lines=[CartLine(product_id=pid, quantity=qty, discount=Decimal(disc)) for pid, qty, disc in lines],
        payment_method=method,
        amount_paid=Decimal(paid),
        discount_total=Decimal(discount),
        customer=customer or WalkInCustomer(),
    )


class TestCounterScenario:
    def test_wholesale_cash_sale_with_shortfall(self, db_session, coke):
        sale = process_sale(_cart([(coke.id, 15, "0")], paid="600"), "cashier-1", now=SALE_TIME)

        line = sale.lines[0]
        assert line.unit_price == Decimal("35.00")
        assert line.sub_total == Decimal("525.00")
        assert line.tax_amount == Decimal("94.50")
        assert sale.sub_total == Decimal("525.00")
        assert sale.tax_total == Decimal("94.50")
        assert sale.grand_total == Decimal("619.50")
        assert sale.amount_paid == Decimal("600.00")
        assert sale.change_amount == Decimal("0.00")
        assert sale.payment_status == "pending"
        assert sale.total_quantity == 15
        assert reload(coke).stock_quantity == 85

    def test_invoice_number_format(self, db_session, coke):
        sale = process_sale(_cart([(coke.id, 1, "0")], paid="100"), "cashier-1", now=SALE_TIME)
        assert sale.invoice_number == "INV-202600001"

    def test_line_snapshot_survives_price_change(self, db_session, coke):
        sale = process_sale(_cart([(coke.id, 2, "0")], paid="100"), "cashier-1", now=SALE_TIME)

        product = reload(coke)
        product.price = Decimal("55")
        product.cost_price = Decimal("45")
        db.session.commit()

        stored = db.session.get(Sale, sale.id)
        assert stored.lines[0].unit_price == Decimal("40.00")
        assert stored.lines[0].cost_price == Decimal("30.00")
        assert stored.lines[0].name == "Coca-Cola 500ml"


class TestStockConservation:
    def test_stock_and_log_snapshots_match(self, db_session, make_product):
        a = make_product(stock_quantity=20)
        b = make_product(stock_quantity=7)

        sale = process_sale(_cart([(a.id, 3, "0"), (b.id, 7, "0")], paid="1000"), "cashier-9", now=SALE_TIME)

        assert reload(a).stock_quantity == 17
        assert reload(b).stock_quantity == 0

        logs = db.session.query(InventoryLog).order_by(InventoryLog.id).all()
        assert [(log.product_id, log.quantity, log.previous_stock, log.new_stock) for log in logs] == [
            (a.id, -3, 20, 17),
            (b.id, -7, 7, 0),
        ]
        assert all(log.type == "SALE" for log in logs)
        assert all(log.reference_id == sale.id for log in logs)
        assert all(log.user_id == "cashier-9" for log in logs)

    def test_last_sold_at_is_stamped(self, db_session, coke):
        process_sale(_cart([(coke.id, 1, "0")], paid="50"), "cashier-1", now=SALE_TIME)
        assert reload(coke).last_sold_at.replace(tzinfo=None) == SALE_TIME

    def test_repeated_product_lines_share_stock(self, db_session, make_product):
        product = make_product(stock_quantity=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            process_sale(_cart([(product.id, 3, "0"), (product.id, 3, "0")], paid="1000"), "c", now=SALE_TIME)

        assert exc_info.value.details["requested_quantity"] == 6
        assert exc_info.value.details["available_quantity"] == 5
        assert reload(product).stock_quantity == 5


class TestNoNegativeStock:
    def test_failing_line_leaves_every_line_untouched(self, db_session, make_product):
        plenty = make_product(name="Plenty", stock_quantity=50)
        scarce = make_product(name="Scarce", stock_quantity=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            process_sale(_cart([(plenty.id, 5, "0"), (scarce.id, 3, "0")], paid="1000"), "c", now=SALE_TIME)

        err = exc_info.value
        assert "Scarce" in str(err)
        assert err.details["product_id"] == scarce.id
        assert err.details["requested_quantity"] == 3
        assert err.details["available_quantity"] == 2

        assert reload(plenty).stock_quantity == 50
        assert reload(scarce).stock_quantity == 2
        assert db.session.query(InventoryLog).count() == 0
        assert db.session.query(Sale).count() == 0
        assert db.session.query(DailyReport).count() == 0

    def test_exact_stock_can_be_sold_out(self, db_session, make_product):
        product = make_product(stock_quantity=4)
        process_sale(_cart([(product.id, 4, "0")], paid="1000"), "c", now=SALE_TIME)
        assert reload(product).stock_quantity == 0


class TestWholesaleTiering:
    @pytest.mark.parametrize("quantity, unit_price", [(9, "100.00"), (10, "90.00"), (11, "90.00")])
    def test_threshold_is_inclusive(self, db_session, make_product, quantity, unit_price):
        product = make_product(price="100", wholesale_price="90", wholesale_threshold=10)
        sale = process_sale(_cart([(product.id, quantity, "0")], paid="5000"), "c", now=SALE_TIME)
        assert sale.lines[0].unit_price == Decimal(unit_price)

    def test_tier_is_per_line_not_per_cart(self, db_session, make_product):
        product = make_product(price="100", wholesale_price="90", wholesale_threshold=10, stock_quantity=100)
        sale = process_sale(_cart([(product.id, 6, "0"), (product.id, 6, "0")], paid="5000"), "c", now=SALE_TIME)
        assert [line.unit_price for line in sale.lines] == [Decimal("100.00"), Decimal("100.00")]

    def test_threshold_without_wholesale_price_keeps_retail(self, db_session, make_product):
        product = make_product(price="100", wholesale_price=None, wholesale_threshold=2)
        sale = process_sale(_cart([(product.id, 5, "0")], paid="5000"), "c", now=SALE_TIME)
        assert sale.lines[0].unit_price == Decimal("100.00")

    def test_zero_wholesale_price_keeps_retail(self, db_session, make_product):
        product = make_product(price="100", wholesale_price="0", wholesale_threshold=2)
        sale = process_sale(_cart([(product.id, 5, "0")], paid="5000"), "c", now=SALE_TIME)
        assert sale.lines[0].unit_price == Decimal("100.00")


class TestTaxAndTotals:
    def test_gst_split_is_even(self, db_session, make_product):
        product = make_product(price="10.01", tax_rate="5")
        sale = process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)

        assert sale.tax_total == Decimal("0.50")
        assert sale.cgst == sale.sgst == sale.tax_total / 2
        assert sale.igst == 0

    def test_odd_paise_tax_split_keeps_third_decimal(self, db_session, make_product):
        product = make_product(price="1", tax_rate="5")
        sale = process_sale(_cart([(product.id, 1, "0")], paid="10"), "c", now=SALE_TIME)

        assert sale.tax_total == Decimal("0.05")
        assert sale.cgst == Decimal("0.025")
        assert sale.cgst + sale.sgst == sale.tax_total

    def test_line_and_cart_discounts(self, db_session, make_product):
        product = make_product(price="100", tax_rate="10")
        sale = process_sale(_cart([(product.id, 2, "15")], paid="500", discount="5"), "c", now=SALE_TIME)

        # tax is charged on the undiscounted line amount
        assert sale.lines[0].sub_total == Decimal("185.00")
        assert sale.lines[0].tax_amount == Decimal("20.00")
        assert sale.grand_total == Decimal("200.00")
        assert sale.discount_total == Decimal("5.00")

    def test_overpayment_becomes_change(self, db_session, make_product):
        product = make_product(price="80")
        sale = process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)

        assert sale.amount_paid == Decimal("80.00")
        assert sale.change_amount == Decimal("20.00")
        assert sale.payment_status == "paid"

    def test_discount_larger_than_total_is_rejected(self, db_session, make_product):
        product = make_product(price="10", stock_quantity=5)
        with pytest.raises(SaleError):
            process_sale(_cart([(product.id, 1, "0")], paid="0", discount="50"), "c", now=SALE_TIME)
        assert reload(product).stock_quantity == 5


class TestInvoiceNumbering:
    def test_sequential_sales_are_gapless_and_increasing(self, db_session, make_product):
        product = make_product(stock_quantity=100)
        numbers = [
            process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME).invoice_number
            for _ in range(5)
        ]
        assert numbers == [f"INV-2026{n:05d}" for n in range(1, 6)]

    def test_failed_sale_does_not_consume_a_number(self, db_session, make_product):
        product = make_product(stock_quantity=1)
        process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)
        with pytest.raises(InsufficientStockError):
            process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)

        restock = reload(product)
        restock.stock_quantity = 3
        db.session.commit()

        sale = process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)
        assert sale.invoice_number == "INV-202600002"


class TestDailyReport:
    def test_two_sales_accumulate(self, db_session, make_product):
        product = make_product(price="100", cost_price="70", stock_quantity=20)

        s1 = process_sale(_cart([(product.id, 2, "0")], paid="200"), "c", now=SALE_TIME)
        s2 = process_sale(_cart([(product.id, 3, "0")], method="upi", paid="300"), "c", now=SALE_TIME)

        report = db.session.query(DailyReport).filter_by(date=date(2026, 10, 19)).one()
        assert report.total_sales == s1.grand_total + s2.grand_total
        assert report.order_count == 2
        assert report.total_profit == Decimal("150.00")
        assert report.cash_amount == Decimal("200.00")
        assert report.upi_amount == Decimal("300.00")
        assert report.credit_amount == Decimal("0.00")

    def test_partial_cash_sale_feeds_cash_and_credit(self, db_session, coke):
        process_sale(_cart([(coke.id, 15, "0")], paid="600"), "c", now=SALE_TIME)

        report = db.session.query(DailyReport).one()
        assert report.cash_amount == Decimal("600.00")
        assert report.credit_amount == Decimal("19.50")
        assert report.total_tax == Decimal("94.50")
        assert report.total_profit == Decimal("75.00")

    def test_report_is_keyed_by_sale_day(self, db_session, make_product):
        product = make_product(stock_quantity=10)
        process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)
        process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME.replace(day=20))

        dates = [r.date for r in db.session.query(DailyReport).order_by(DailyReport.date)]
        assert dates == [date(2026, 10, 19), date(2026, 10, 20)]

    def test_new_years_eve_sale_uses_store_local_year(self, app, db_session, make_product):
        product = make_product(stock_quantity=10)
        app.config["STORE_TIMEZONE"] = "Asia/Kolkata"
        try:
            # 20:00 UTC on 31 Dec is 01:30 on 1 Jan in Kolkata
            sale = process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=datetime(2026, 12, 31, 20, 0))
        finally:
            app.config["STORE_TIMEZONE"] = "UTC"

        report = db.session.query(DailyReport).one()
        assert report.date == date(2027, 1, 1)
        assert sale.invoice_number == "INV-202700001"


class TestCustomerLedger:
    def test_credit_sale_updates_balance_and_points(self, db_session, make_product, customer):
        product = make_product(price="500", stock_quantity=5)

        sale = process_sale(
            _cart([(product.id, 1, "0")], method="credit", paid="200",
                  customer=RegisteredCustomer(customer.id)),
            "c",
            now=SALE_TIME,
        )

        updated = reload(customer)
        assert sale.grand_total == Decimal("500.00")
        assert updated.outstanding_balance == Decimal("300.00")
        assert updated.loyalty_points == 5
        assert updated.last_visit_at.replace(tzinfo=None) == SALE_TIME
        assert sale.customer_id == customer.id
        assert sale.customer_details is None

    def test_points_are_floor_rounded(self, db_session, make_product, customer):
        product = make_product(price="199.99")
        process_sale(
            _cart([(product.id, 1, "0")], paid="199.99", customer=RegisteredCustomer(customer.id)),
            "c",
            now=SALE_TIME,
        )
        updated = reload(customer)
        assert updated.loyalty_points == 1
        assert updated.outstanding_balance == Decimal("0.00")

    def test_walk_in_sale_keeps_snapshot_only(self, db_session, make_product, customer):
        product = make_product()
        sale = process_sale(
            _cart([(product.id, 1, "0")], paid="100", customer=WalkInCustomer("Ravi", "9000000000")),
            "c",
            now=SALE_TIME,
        )
        assert sale.customer_id is None
        assert sale.customer_details == {"name": "Ravi", "phone": "9000000000"}
        assert reload(customer).loyalty_points == 0

    def test_unknown_customer_is_not_found(self, db_session, make_product):
        product = make_product(stock_quantity=5)
        with pytest.raises(NotFoundError):
            process_sale(
                _cart([(product.id, 1, "0")], paid="100", customer=RegisteredCustomer(9999)),
                "c",
                now=SALE_TIME,
            )
        assert reload(product).stock_quantity == 5


class TestAtomicity:
    def test_unknown_product_aborts(self, db_session, make_product):
        product = make_product(stock_quantity=5)
        with pytest.raises(NotFoundError) as exc_info:
            process_sale(_cart([(product.id, 1, "0"), (424242, 1, "0")], paid="100"), "c", now=SALE_TIME)

        assert exc_info.value.details == {"product_id": 424242}
        assert reload(product).stock_quantity == 5

    def test_sale_insert_failure_rolls_back_everything(self, db_session, make_product, customer, monkeypatch):
        product = make_product(stock_quantity=10)

        def failing_insert(sale):
            raise IntegrityError("INSERT INTO sales", {}, Exception("simulated"))

        monkeypatch.setattr(sales_service, "insert_sale", failing_insert)

        with pytest.raises(PersistenceError) as exc_info:
            process_sale(
                _cart([(product.id, 4, "0")], paid="0", customer=RegisteredCustomer(customer.id)),
                "c",
                now=SALE_TIME,
            )

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert reload(product).stock_quantity == 10
        assert db.session.query(InventoryLog).count() == 0
        assert db.session.query(Sale).count() == 0
        assert db.session.query(DailyReport).count() == 0
        assert db.session.query(DocumentSequence).count() == 0
        assert reload(customer).outstanding_balance == Decimal("0.00")

    def test_report_failure_rolls_back_ledger(self, db_session, make_product, customer, monkeypatch):
        product = make_product(stock_quantity=10)

        def failing_upsert(report_date, deltas):
            raise IntegrityError("UPDATE daily_reports", {}, Exception("simulated"))

        monkeypatch.setattr(sales_service, "upsert_daily_increment", failing_upsert)

        with pytest.raises(PersistenceError):
            process_sale(
                _cart([(product.id, 2, "0")], method="credit", paid="0",
                      customer=RegisteredCustomer(customer.id)),
                "c",
                now=SALE_TIME,
            )

        updated = reload(customer)
        assert updated.outstanding_balance == Decimal("0.00")
        assert updated.loyalty_points == 0
        assert reload(product).stock_quantity == 10
        assert db.session.query(Sale).count() == 0

    def test_lock_conflict_reruns_whole_unit(self, db_session, make_product, monkeypatch):
        product = make_product(stock_quantity=10)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

        original = sales_service.begin_write_transaction
        calls = {"n": 0}

        def flaky_begin():
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
            original()

        monkeypatch.setattr(sales_service, "begin_write_transaction", flaky_begin)

        sale = process_sale(_cart([(product.id, 2, "0")], paid="1000"), "c", now=SALE_TIME)

        assert calls["n"] == 2
        assert sale.invoice_number == "INV-202600001"
        assert reload(product).stock_quantity == 8
        assert db.session.query(InventoryLog).count() == 1

    def test_persistent_lock_conflict_surfaces_as_persistence_error(self, db_session, make_product, monkeypatch):
        product = make_product(stock_quantity=10)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

        def always_locked():
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        monkeypatch.setattr(sales_service, "begin_write_transaction", always_locked)

        with pytest.raises(PersistenceError):
            process_sale(_cart([(product.id, 2, "0")], paid="1000"), "c", now=SALE_TIME)
        assert reload(product).stock_quantity == 10


class TestSaleReads:
    def test_get_sale_missing(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(12345)

    def test_list_sales_newest_first_and_paginated(self, db_session, make_product):
        product = make_product(stock_quantity=10)
        for day in (17, 18, 19):
            process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME.replace(day=day))

        result = sales_service.list_sales(page=1, limit=2)
        assert result["total"] == 3
        assert result["pages"] == 2
        assert [s.created_at.day for s in result["data"]] == [19, 18]

    def test_list_sales_today_filter(self, db_session, make_product):
        product = make_product(stock_quantity=10)
        process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME.replace(day=18))
        process_sale(_cart([(product.id, 1, "0")], paid="100"), "c", now=SALE_TIME)

        result = sales_service.list_sales(period="today", now=SALE_TIME.replace(hour=23))
        assert result["total"] == 1

    def test_list_sales_unknown_filter(self, db_session):
        with pytest.raises(SaleError):
            sales_service.list_sales(period="fortnight")


def test_product_check_constraint_blocks_negative_stock(db_session, make_product):
    product = make_product(stock_quantity=1)
    with pytest.raises(IntegrityError):
        db.session.query(Product).filter_by(id=product.id).update({"stock_quantity": -1})
        db.session.commit()
    db.session.rollback()
