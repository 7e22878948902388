"""
Sales Service - atomic sale processing

WHY: A sale touches stock, the inventory audit log, the invoice sequence,
the customer ledger and the daily report. All of it commits in one
transaction or none of it does; no caller ever sees a partially applied sale.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..cart import Cart, RegisteredCustomer
from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..money import ZERO, floor_div, to_money
from retailpos.time_utils import local_business_date, local_day_bounds, utcnow
from .catalog_service import find_product_by_id
from .concurrency import begin_write_transaction, run_with_retry
from .document_service import next_invoice_number
from .inventory_service import StockConflictError, record_sale_stock_movement
from .ledger_service import find_customer_by_id, increment_customer_balance_and_points
from .reporting_service import DailyDeltas, upsert_daily_increment


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(SaleError):
    """A referenced product or customer does not exist."""


class InsufficientStockError(SaleError):
    """A line asks for more units than the product has in stock."""


class PersistenceError(SaleError):
    """A write failed; the whole sale was rolled back."""


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    unit_price: Decimal
    tax_amount: Decimal
    discount: Decimal
    sub_total: Decimal

    @property
    def profit(self) -> Decimal:
        return self.sub_total - to_money(self.product.cost_price * self.quantity)


@dataclass(frozen=True)
class SaleTotals:
    sub_total: Decimal
    tax_total: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    grand_total: Decimal
    amount_paid: Decimal
    change_amount: Decimal
    outstanding: Decimal

    @property
    def payment_status(self) -> str:
        return "pending" if self.outstanding > 0 else "paid"


def applied_unit_price(product: Product, quantity: int) -> Decimal:
    """
    Retail price, or the wholesale price once a single line reaches the
    wholesale threshold. The tier is decided per line, not per cart.

    A zero or unset wholesale price or threshold means no wholesale tier.
    """
    if (
        product.wholesale_price
        and product.wholesale_threshold
        and quantity >= product.wholesale_threshold
    ):
        return to_money(product.wholesale_price)
    return to_money(product.price)


def price_line(product: Product, quantity: int, discount: Decimal = ZERO) -> PricedLine:
    unit_price = applied_unit_price(product, quantity)
    gross = unit_price * quantity
    tax_amount = to_money(gross * Decimal(product.tax_rate or 0) / 100)
    sub_total = to_money(gross - discount)
    if sub_total < 0:
        raise SaleError(
            f"Discount exceeds line total for {product.name}",
            details={"product_id": product.id, "discount": str(discount), "line_total": str(gross)},
        )
    return PricedLine(
        product=product,
        quantity=quantity,
        unit_price=unit_price,
        tax_amount=tax_amount,
        discount=to_money(discount),
        sub_total=sub_total,
    )


def compute_totals(lines: list[PricedLine], discount_total: Decimal, tendered: Decimal) -> SaleTotals:
    """
    Sale totals with the domestic GST split (CGST/SGST halves, IGST unused).

    amount_paid is capped at grand_total; overpayment becomes change_amount
    and underpayment becomes the outstanding credit.
    """
    sub_total = to_money(sum((line.sub_total for line in lines), ZERO))
    tax_total = to_money(sum((line.tax_amount for line in lines), ZERO))
    grand_total = to_money(sub_total + tax_total - discount_total)
    if grand_total < 0:
        raise SaleError(
            "Discount exceeds sale total",
            details={"discount_total": str(discount_total), "total_before_discount": str(sub_total + tax_total)},
        )

    half_tax = tax_total / 2
    return SaleTotals(
        sub_total=sub_total,
        tax_total=tax_total,
        cgst=half_tax,
        sgst=half_tax,
        igst=ZERO,
        grand_total=grand_total,
        amount_paid=min(tendered, grand_total),
        change_amount=max(ZERO, tendered - grand_total),
        outstanding=max(ZERO, grand_total - tendered),
    )


def insert_sale(sale: Sale) -> Sale:
    """Stage the sale and its lines; flush to assign ids. Does not commit."""
    db.session.add(sale)
    db.session.flush()
    return sale


def _load_products(cart: Cart) -> dict[int, Product]:
    products: dict[int, Product] = {}
    for line in cart.lines:
        if line.product_id in products:
            continue
        product = find_product_by_id(line.product_id, lock=True)
        if not product:
            raise NotFoundError(
                f"Product {line.product_id} not found",
                details={"product_id": line.product_id},
            )
        products[line.product_id] = product
    return products


def _validate_stock(cart: Cart, products: dict[int, Product]) -> None:
    # Lines for the same product draw on the same stock
    requested: dict[int, int] = {}
    for line in cart.lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    for product_id, qty in requested.items():
        product = products[product_id]
        if product.stock_quantity < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested_quantity": qty,
                    "available_quantity": product.stock_quantity,
                },
            )


def _process_sale_locked(cart: Cart, operator_id: str, now: datetime) -> Sale:
    products = _load_products(cart)

    customer = None
    if isinstance(cart.customer, RegisteredCustomer):
        customer = find_customer_by_id(cart.customer.customer_id, lock=True)
        if not customer:
            raise NotFoundError(
                f"Customer {cart.customer.customer_id} not found",
                details={"customer_id": cart.customer.customer_id},
            )

    _validate_stock(cart, products)

    invoice_number = next_invoice_number(now)

    priced: list[PricedLine] = []
    logs = []
    for line in cart.lines:
        product = products[line.product_id]
        priced_line = price_line(product, line.quantity, line.discount)
        try:
            log = record_sale_stock_movement(
                product=product,
                quantity=line.quantity,
                user_id=operator_id,
                now=now,
                note=f"Sale {invoice_number}",
            )
        except StockConflictError as exc:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested_quantity": exc.requested,
                    "available_quantity": exc.available,
                },
            ) from exc
        priced.append(priced_line)
        logs.append(log)

    totals = compute_totals(priced, cart.discount_total, cart.amount_paid)

    sale = Sale(
        invoice_number=invoice_number,
        cashier_id=operator_id,
        customer_id=customer.id if customer else None,
        customer_name=None if customer else cart.customer.name,
        customer_phone=None if customer else cart.customer.phone,
        total_quantity=cart.total_quantity,
        sub_total=totals.sub_total,
        tax_total=totals.tax_total,
        cgst=totals.cgst,
        sgst=totals.sgst,
        igst=totals.igst,
        discount_total=cart.discount_total,
        grand_total=totals.grand_total,
        payment_method=cart.payment_method,
        payment_status=totals.payment_status,
        amount_paid=totals.amount_paid,
        change_amount=totals.change_amount,
        status="completed",
        offline_id=cart.offline_id,
        created_at=now,
    )
    for i, line in enumerate(priced, start=1):
        sale.lines.append(SaleLine(
            line_number=i,
            product_id=line.product.id,
            name=line.product.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            cost_price=to_money(line.product.cost_price),
            tax_rate=line.product.tax_rate,
            tax_amount=line.tax_amount,
            discount=line.discount,
            sub_total=line.sub_total,
        ))
    insert_sale(sale)

    # Stamp this transaction's log entries with the sale they belong to
    for log in logs:
        log.reference_id = sale.id

    if customer:
        increment_customer_balance_and_points(
            customer.id,
            totals.outstanding,
            floor_div(totals.grand_total, current_app.config.get("LOYALTY_POINT_VALUE", 100)),
            visited_at=now,
        )

    deltas = DailyDeltas(
        total_sales=totals.grand_total,
        total_profit=to_money(sum((line.profit for line in priced), ZERO)),
        total_tax=totals.tax_total,
        total_discount=cart.discount_total,
        order_count=1,
    )
    deltas.add_payment(cart.payment_method, totals.amount_paid)
    deltas.add_payment("credit", totals.outstanding)
    report_date = local_business_date(now, current_app.config.get("STORE_TIMEZONE", "UTC"))
    upsert_daily_increment(report_date, deltas)

    return sale


def process_sale(cart: Cart, operator_id: str, *, now: datetime | None = None) -> Sale:
    """
    Finalize a cart into a committed Sale.

    One unit of work: N stock decrements, N inventory log entries, 1 sale,
    at most 1 customer ledger update and 1 daily report upsert. Lock
    conflicts re-run the whole unit; every other failure rolls back and
    surfaces as a SaleError subclass.
    """
    if not cart.lines:
        raise SaleError("Cannot process a sale with no lines")
    if not operator_id:
        raise SaleError("operator_id is required")

    def _op():
        sale_time = now or utcnow()
        try:
            begin_write_transaction()
            sale = _process_sale_locked(cart, str(operator_id), sale_time)
            db.session.commit()
        except (OperationalError, StaleDataError):
            # Lock conflicts: run_with_retry rolls back and re-runs
            raise
        except SaleError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(
                "Failed to persist sale",
                details={"reason": exc.__class__.__name__},
            ) from exc
        return sale

    try:
        sale = run_with_retry(_op)
    except (OperationalError, StaleDataError) as exc:
        raise PersistenceError(
            "Sale could not be committed due to concurrent updates",
            details={"reason": exc.__class__.__name__},
        ) from exc

    current_app.logger.info(
        "Sale %s committed: %d line(s), grand_total=%s, payment=%s/%s",
        sale.invoice_number, len(cart.lines), sale.grand_total,
        sale.payment_method, sale.payment_status,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


SALE_LIST_FILTERS = ("today", "week", "month", "year", "custom", "all")


def _filter_range(
    period: str,
    *,
    start: datetime | None,
    end: datetime | None,
    now: datetime,
    tz_name: str,
) -> tuple[datetime | None, datetime | None]:
    if period == "all":
        return None, None
    if period == "today":
        return local_day_bounds(local_business_date(now, tz_name), tz_name)
    if period == "week":
        return now - timedelta(days=7), now
    if period == "month":
        return now - timedelta(days=30), now
    if period == "year":
        return now - timedelta(days=365), now
    if period == "custom":
        if start is None or end is None:
            return None, None
        range_start, _ = local_day_bounds(start.date(), tz_name)
        _, range_end = local_day_bounds(end.date(), tz_name)
        return range_start, range_end
    raise SaleError(f"filter must be one of: {', '.join(SALE_LIST_FILTERS)}")


def list_sales(
    *,
    period: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 10,
    now: datetime | None = None,
) -> dict:
    """
    Newest-first, paginated sale listing.

    custom ranges are inclusive of the whole end day.
    """
    page = max(page, 1)
    limit = max(min(limit, 100), 1)

    query = db.session.query(Sale)
    if period:
        range_start, range_end = _filter_range(
            period,
            start=start,
            end=end,
            now=now or utcnow(),
            tz_name=current_app.config.get("STORE_TIMEZONE", "UTC"),
        )
        if range_start is not None:
            query = query.filter(Sale.created_at >= range_start)
        if range_end is not None:
            query = query.filter(Sale.created_at <= range_end)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "count": len(sales),
        "total": total,
        "pages": -(-total // limit),
        "data": sales,
    }
