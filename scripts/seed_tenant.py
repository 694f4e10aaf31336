#!/usr/bin/env python3
"""
Provision a development tenant: payment methods, one account per method,
expense categories and (optionally) a sample customer.

Safe to run repeatedly; existing rows are found by slug / name and only
the missing ones are created.

Usage:
    python3 scripts/seed_tenant.py --name "Taller Demo" --slug taller-demo [options]

Examples:
    # Defaults (Efectivo, Nequi, Bancolombia; standard categories)
    python3 scripts/seed_tenant.py --name "Taller Demo" --slug taller-demo

    # Custom methods, create tables first, add a walk-in customer
    python3 scripts/seed_tenant.py --name Demo --slug demo --create-tables \\
        --payment-method Efectivo --payment-method Daviplata \\
        --customer 900123456 "Cliente Mostrador"
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Provision a tenant with payment methods, accounts and categories.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--name", required=True, help="Tenant display name.")
    parser.add_argument("--slug", required=True, help="Unique tenant slug.")
    parser.add_argument(
        "--payment-method",
        dest="payment_methods",
        action="append",
        default=None,
        help="Payment method name (repeatable). Default: Efectivo, Nequi, Bancolombia.",
    )
    parser.add_argument(
        "--customer",
        nargs=2,
        metavar=("IDENTIFICATION", "NAME"),
        default=None,
        help="Also create a customer with this identification and name.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file (default: LEDGER_CONFIG env var, if set).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides settings / DATABASE_URL).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before provisioning.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from ledger_kernel.config import load_settings
    from ledger_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from ledger_kernel.logging_config import configure_logging
    from ledger_kernel.services.provisioning_service import (
        DEFAULT_PAYMENT_METHODS,
        ProvisioningService,
    )

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    db_url = args.db_url or settings.database_url

    try:
        init_engine_from_url(db_url, echo=settings.echo_sql)
        if args.create_tables:
            create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    methods = tuple(args.payment_methods or DEFAULT_PAYMENT_METHODS)
    with session_scope() as session:
        service = ProvisioningService(session)
        result = service.provision_tenant(args.name, args.slug, payment_methods=methods)
        customer = None
        if args.customer:
            identification, customer_name = args.customer
            customer = service.add_customer(result.tenant.id, identification, customer_name)

        print(f"Tenant:   {result.tenant.name} ({result.tenant.slug})")
        print(f"  id:     {result.tenant.id}")
        for name, method in result.payment_methods.items():
            account = result.accounts[name]
            print(f"  method: {name:<20} {method.id}  account {account.id}  balance {account.balance}")
        for name, category in result.categories.items():
            print(f"  category: {name:<18} {category.id}")
        if customer is not None:
            print(f"  customer: {customer.name} ({customer.identification}) {customer.id}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
