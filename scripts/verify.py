"""
Ledger Verification Script

Verifies data integrity of a tenant's exported order ledger:
    - One row per order id
    - subtotal + tax + service charge == total on every row
    - Line totals add up to the subtotal

Run from project root: python scripts/verify.py <tenant_id>

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import json
import os
import sys
from datetime import datetime
from decimal import Decimal

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd  # noqa: E402

from app.services.order_export import get_order_exporter  # noqa: E402


def check_row(row: dict) -> list[str]:
    """Arithmetic problems of one ledger row (empty when it adds up)."""
    problems = []
    subtotal = Decimal(str(row["subtotal"]))
    tax = Decimal(str(row["tax_amount"]))
    service = Decimal(str(row["service_charge"]))
    total = Decimal(str(row["total_amount"]))

    if subtotal + tax + service != total:
        problems.append(f"{subtotal} + {tax} + {service} != {total}")

    lines = sum((Decimal(i["line_total"]) for i in json.loads(row["items"])), Decimal("0"))
    if lines != subtotal:
        problems.append(f"line totals {lines} != subtotal {subtotal}")
    return problems


def verify_ledger(tenant_id: str) -> bool:
    """Verify a tenant ledger after a simulation."""
    exporter = get_order_exporter()
    ledger = exporter.ledger_path(tenant_id)

    print("=" * 60)
    print("LEDGER VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"File: {ledger}")
    print("=" * 60)

    if not ledger.exists():
        print("\nLedger not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    df = pd.DataFrame(exporter.read_orders(tenant_id))
    print(f"\nSTATISTICS:")
    print(f"   Orders: {len(df)}")
    print(f"   Deleted: {int(df['is_deleted'].sum()) if len(df) else 0}")

    ok = True

    duplicates = int(df["order_id"].duplicated().sum()) if len(df) else 0
    if duplicates > 0:
        print(f"\n{duplicates} duplicate order IDs found!")
        ok = False
    else:
        print("No duplicate order IDs")

    bad_rows = 0
    for row in df.to_dict("records"):
        problems = check_row(row)
        if problems:
            bad_rows += 1
            print(f"   Order {row['order_id']} v{row['version']}: {'; '.join(problems)}")
    if bad_rows:
        print(f"\n{bad_rows} rows with inconsistent totals")
        ok = False
    else:
        print("All totals add up")

    if len(df):
        revenue = sum(Decimal(str(v)) for v in df.loc[~df["is_deleted"].astype(bool), "total_amount"])
        print(f"\nREVENUE (non-deleted): {revenue}")

        print("\nSTATUS BREAKDOWN:")
        print(df["order_status"].value_counts().to_string())

    print("\n" + "=" * 60)
    print("VERIFICATION PASSED" if ok else "VERIFICATION FAILED")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify a tenant order ledger")
    parser.add_argument("tenant_id", help="Tenant whose ledger to check")
    args = parser.parse_args()

    sys.exit(0 if verify_ledger(args.tenant_id) else 1)
