# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent). Use "flask db upgrade" for managed schemas.
# - python -m flask system seed-demo
#   Insert a demo category, products and customer (skips existing SKUs/phones).
#
# Inspection:
# - python -m flask sales daily-report [--date 2026-10-19]
#   Print the daily aggregate for a date (default: today, store-local).

from __future__ import annotations

from decimal import Decimal

import click
from flask import current_app

from .extensions import db
from .models import Category, Customer, Product
from .services import reporting_service
from .services.catalog_service import get_product_by_sku, save_product
from .time_utils import local_business_date, parse_iso_date, utcnow


DEMO_PRODUCTS = [
    # sku, name, price, cost, tax, stock, wholesale_price, wholesale_threshold
    ("COKE500", "Coca-Cola 500ml", "40", "30", "18", 100, "35", 12),
    ("RICE5KG", "Basmati Rice 5kg", "650", "560", "5", 40, "620", 5),
    ("SOAP100", "Neem Soap 100g", "35", "24", "18", 200, None, None),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""
    pass


@system_group.command('init-db')
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-demo')
def seed_demo():
    """Insert demo catalog and customer data."""
    category = db.session.query(Category).filter_by(name="Grocery").first()
    if not category:
        category = Category(name="Grocery", description="Everyday grocery items")
        db.session.add(category)
        db.session.flush()
        click.echo(f"PASS Created category: {category.name}")

    for sku, name, price, cost, tax, stock, wholesale_price, threshold in DEMO_PRODUCTS:
        if get_product_by_sku(sku):
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        save_product(Product(
            sku=sku,
            name=name,
            category_id=category.id,
            price=Decimal(price),
            cost_price=Decimal(cost),
            tax_rate=Decimal(tax),
            stock_quantity=stock,
            wholesale_price=Decimal(wholesale_price) if wholesale_price else None,
            wholesale_threshold=threshold,
        ))
        click.echo(f"PASS Created product: {sku} ({name})")

    if not db.session.query(Customer).filter_by(phone="9800000001").first():
        db.session.add(Customer(name="Asha Traders", phone="9800000001", credit_limit=Decimal("5000")))
        click.echo("PASS Created customer: Asha Traders (9800000001)")

    db.session.commit()
    click.echo("DONE Demo data ready")


@click.group('sales')
def sales_group():
    """Sales inspection commands."""
    pass


@sales_group.command('daily-report')
@click.option('--date', 'date_str', default=None, help='Date as YYYY-MM-DD (default: today)')
def daily_report_cli(date_str):
    """Print the daily aggregate report."""
    try:
        report_date = parse_iso_date(date_str)
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD", param_hint="--date")
    if report_date is None:
        report_date = local_business_date(utcnow(), current_app.config["STORE_TIMEZONE"])

    report = reporting_service.get_daily_report(report_date)
    if report is None:
        click.echo(f"No sales recorded for {report_date.isoformat()}")
        return

    click.echo("\n" + "="*48)
    click.echo(f"Daily report {report.date.isoformat()}")
    click.echo("="*48)
    click.echo(f"{'Orders':<20} {report.order_count}")
    click.echo(f"{'Total sales':<20} {report.total_sales}")
    click.echo(f"{'Total profit':<20} {report.total_profit}")
    click.echo(f"{'Total tax':<20} {report.total_tax}")
    click.echo(f"{'Total discount':<20} {report.total_discount}")
    for method, amount in report.payment_breakdown.items():
        click.echo(f"  {method:<18} {amount}")
    click.echo("="*48 + "\n")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(sales_group)
