#!/usr/bin/env python3
"""
Purchase order drafting: CLI entry point.

Usage examples:
  python main.py check                              # Verify data API + webhook settings
  python main.py suppliers                          # List suppliers with purchase history
  python main.py templates 1001                     # Show order templates for supplier 1001
  python main.py create 1001 --dry-run              # Auto-select templates, print payload
  python main.py create 1001 --qty 55=3 --exclude 56
"""
import asyncio
import json
import logging
import sys

import click

from config import Config
from pipeline.errors import (
    AuthorizationError,
    ConfigurationError,
    DataSourceError,
    FetchError,
    SubmissionValidationError,
)
from pipeline.processor import PurchaseOrderProcessor
from pipeline.units import format_quantity


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _processor(config: Config) -> PurchaseOrderProcessor:
    try:
        return PurchaseOrderProcessor(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _parse_quantities(values: tuple[str, ...]) -> dict[int, float]:
    quantities = {}
    for value in values:
        product_id, sep, qty = value.partition("=")
        if not sep:
            raise click.BadParameter(f"expected PRODUCT_ID=QUANTITY, got '{value}'", param_hint="--qty")
        try:
            quantities[int(product_id)] = float(qty)
        except ValueError:
            raise click.BadParameter(f"invalid quantity '{value}'", param_hint="--qty")
    return quantities


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Purchase order drafting from supplier order templates."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
def check() -> None:
    """Verify that the data API answers and the webhook is configured."""
    config = Config()

    async def run() -> dict:
        processor = _processor(config)
        try:
            return await processor.check_setup()
        finally:
            await processor.aclose()

    status = asyncio.run(run())

    click.echo("\n=== Setup Check ===\n")
    api = status["data_api"]
    click.echo(f"  Data API:  {api['url']}")
    if api["ok"]:
        click.echo("  Data API reachable:  ✓")
    else:
        click.echo(f"  Data API reachable:  ✗ ({api.get('error')})")
        click.echo("  → Check SUPABASE_URL and SUPABASE_ANON_KEY in your .env")

    hook = status["webhook"]
    tick = "✓" if hook["configured"] else "✗"
    click.echo(f"  Webhook:   {tick}  {hook['url'] or '(N8N_WEBHOOK_URL not set)'}")
    click.echo()


# --------------------------------------------------------------------
# suppliers command
# --------------------------------------------------------------------

@cli.command()
def suppliers() -> None:
    """List suppliers ordered by invoice count, then last purchase."""
    config = Config()

    async def run():
        processor = _processor(config)
        try:
            return await processor.suppliers.fetch_suppliers()
        finally:
            await processor.aclose()

    try:
        rows = asyncio.run(run())
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not rows:
        click.echo("No suppliers found.")
        return
    for s in rows:
        last = s.last_purchase_date or "no purchase orders yet"
        click.echo(f"  {s.kiotviet_id:>8}  {s.display_name:<40} {s.total_invoice:>5} invoices  (last: {last})")


# --------------------------------------------------------------------
# templates command
# --------------------------------------------------------------------

@cli.command()
@click.argument("supplier_id", type=int)
def templates(supplier_id: int) -> None:
    """Show the order templates for SUPPLIER_ID."""
    config = Config()

    async def run():
        processor = _processor(config)
        try:
            return await processor.aggregator.fetch_templates(supplier_id)
        finally:
            await processor.aclose()

    try:
        rows = asyncio.run(run())
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not rows:
        click.echo(f"No templates for supplier {supplier_id}.")
        return
    for t in rows:
        units = ", ".join(f"{u.unit} (= {format_quantity(u.conversion_value)})" for u in t.child_units)
        click.echo(
            f"  {t.product_id:>8}  {t.product_name or t.product_code or '':<40}"
            f" x{t.order_count:<4} avg {format_quantity(t.avg_quantity)}"
            + (f"  [{units}]" if units else "")
        )


# --------------------------------------------------------------------
# create command
# --------------------------------------------------------------------

@cli.command()
@click.argument("supplier_id", type=int)
@click.option("--qty", "quantities", multiple=True, help="Override a quantity: PRODUCT_ID=QUANTITY")
@click.option("--exclude", "excluded", multiple=True, type=int, help="Leave a product out of the order")
@click.option("--branch", "branch_id", default=None, type=int, help="Branch id (default: supplier's branch)")
@click.option("--dry-run", is_flag=True, help="Print the payload instead of sending it")
@click.option("--email", default=None, help="Sign-in email (default: SUPABASE_USER_EMAIL)")
@click.option("--password", default=None, help="Sign-in password (default: SUPABASE_USER_PASSWORD)")
def create(
    supplier_id: int,
    quantities: tuple[str, ...],
    excluded: tuple[int, ...],
    branch_id: int | None,
    dry_run: bool,
    email: str | None,
    password: str | None,
) -> None:
    """
    Draft a purchase order for SUPPLIER_ID from its order templates.

    \b
    Every template is selected with its average quantity; --qty and
    --exclude adjust the selection before it is sent.  Sending requires a
    staff or admin account; --dry-run works anonymously.
    """
    config = Config()
    overrides = _parse_quantities(quantities)

    async def run():
        processor = _processor(config)
        try:
            if not dry_run:
                login_email = email or processor.config.auth_email
                login_password = password or processor.config.auth_password
                if not login_email or not login_password:
                    click.echo("Error: sign-in required, set --email/--password or SUPABASE_USER_EMAIL/PASSWORD.", err=True)
                    return None
                try:
                    await processor.sign_in(login_email, login_password)
                    await processor.authorize_purchase_orders()
                except DataSourceError as e:
                    click.echo(f"Error: sign-in failed: {e}", err=True)
                    return None
                except AuthorizationError as e:
                    click.echo(f"Error: {e}", err=True)
                    return None

            listing = await processor.suppliers.fetch_suppliers()
            supplier = next((s for s in listing if s.kiotviet_id == supplier_id), None)
            if supplier is None:
                click.echo(f"Error: supplier {supplier_id} not found.", err=True)
                return None

            flow = processor.new_flow()
            await flow.choose_supplier(supplier)
            if flow.loader.error:
                click.echo(f"Error: {flow.loader.error}", err=True)
                return None

            for product_id in excluded:
                flow.remove_product(product_id)
            for product_id, qty in overrides.items():
                if not flow.selection.update_quantity(product_id, qty):
                    click.echo(f"  ⚠  ignored quantity {qty} for product {product_id}", err=True)

            totals = flow.totals()
            click.echo(f"\n  Supplier:  {supplier.display_name}")
            click.echo(f"  Products:  {totals.line_count}")
            if totals.breakdown:
                click.echo(f"  Total:     {totals.breakdown}")
            click.echo()

            if dry_run:
                try:
                    payload = processor.builder.build(
                        flow.selection.selected_list(), flow.selected_supplier, branch_id
                    )
                except SubmissionValidationError as e:
                    click.echo(f"Error: {e}", err=True)
                    return None
                click.echo(json.dumps(payload.to_json_dict(), indent=2, ensure_ascii=False))
                return True
            return await flow.submit(branch_id)
        finally:
            await processor.aclose()

    try:
        result = asyncio.run(run())
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if result is None:
        sys.exit(1)
    if result is True:
        return
    if result.ok:
        click.echo(f"✓ {result.message}")
    else:
        click.echo(f"✗ {result.message}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
