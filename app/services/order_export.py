"""
Order Ledger Exporter with Concurrency Control

Keeps one Excel ledger per tenant (``<data_dir>/<tenant_id>/orders.xlsx``)
holding the latest exported state of every order. Rows are keyed by order
id: exporting an order again replaces its row, and an older version never
overwrites a newer one.

Writers on the same tenant ledger are serialized with a file lock, so
several Celery workers can export concurrently.

Author: Khalil Bannouri
Version: 1.0.0
"""

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from app.core.config import get_settings

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "orders.xlsx"


class OrderLedgerExporter:
    """Per-tenant Excel ledger of order snapshots."""

    ORDER_COLUMNS = [
        "order_id",
        "version",
        "created_at",
        "updated_at",
        "order_type",
        "order_status",
        "table_id",
        "customer_name",
        "customer_phone",
        "device_id",
        "notes",
        "items",
        "item_count",
        "subtotal",
        "tax_amount",
        "service_charge",
        "total_amount",
        "is_deleted",
        "exported_at",
    ]

    def __init__(self, data_dir: Path, lock_timeout: float = 30):
        self.data_dir = Path(data_dir)
        self.lock_timeout = lock_timeout

    def ledger_path(self, tenant_id: str) -> Path:
        return self.data_dir / str(tenant_id) / LEDGER_FILENAME

    def _lock_for(self, ledger: Path) -> FileLock:
        return FileLock(str(ledger) + ".lock", timeout=self.lock_timeout)

    def _load_or_create_df(self, ledger: Path) -> pd.DataFrame:
        if ledger.exists():
            return pd.read_excel(ledger, engine="openpyxl", dtype={"order_id": str})
        return pd.DataFrame(columns=self.ORDER_COLUMNS)

    def _to_row(self, snapshot: dict[str, Any], export_time: str) -> dict[str, Any]:
        """Flatten an order projection (JSON mode, snake_case keys) to a ledger row."""
        items = snapshot.get("items") or []
        return {
            "order_id": str(snapshot["id"]),
            "version": int(snapshot["version"]),
            "created_at": snapshot.get("created_at"),
            "updated_at": snapshot.get("updated_at"),
            "order_type": snapshot.get("order_type"),
            "order_status": snapshot.get("status"),
            "table_id": snapshot.get("table_id"),
            "customer_name": snapshot.get("customer_name"),
            "customer_phone": snapshot.get("customer_phone"),
            "device_id": snapshot.get("device_id"),
            "notes": snapshot.get("notes"),
            "items": json.dumps([
                {
                    "name": item.get("item_name"),
                    "quantity": item.get("quantity"),
                    "unit_price": str(item.get("unit_price")),
                    "line_total": str(item.get("line_total")),
                }
                for item in items
            ]),
            "item_count": sum(int(item.get("quantity", 0)) for item in items),
            "subtotal": str(snapshot.get("subtotal")),
            "tax_amount": str(snapshot.get("tax_amount")),
            "service_charge": str(snapshot.get("service_charge")),
            "total_amount": str(snapshot.get("total_amount")),
            "is_deleted": bool(snapshot.get("is_deleted", False)),
            "exported_at": export_time,
        }

    def export_order(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        """
        Upsert one order snapshot into its tenant ledger.

        Returns:
            dict: ``success``, ``message``, ``order_id``, ``version``,
            ``exported_at`` and ``skipped`` (True when the ledger already
            held a newer version)
        """
        order_id = str(snapshot.get("id"))
        version = int(snapshot.get("version", 0))
        result = {
            "success": False,
            "message": "",
            "order_id": order_id,
            "version": version,
            "exported_at": None,
            "skipped": False,
        }

        ledger = self.ledger_path(snapshot["tenant_id"])
        ledger.parent.mkdir(parents=True, exist_ok=True)

        try:
            with self._lock_for(ledger):
                logger.debug(f"Lock acquired for order {order_id}")

                df = self._load_or_create_df(ledger)
                existing = df[df["order_id"] == order_id]

                if not existing.empty and int(existing["version"].max()) > version:
                    result["success"] = True
                    result["skipped"] = True
                    result["message"] = f"Ledger already holds a newer version of order {order_id}"
                    logger.info(result["message"])
                    return result

                export_time = datetime.now(timezone.utc).isoformat()
                row = self._to_row(snapshot, export_time)

                df = df[df["order_id"] != order_id]
                new_row = pd.DataFrame([row], columns=self.ORDER_COLUMNS)
                df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
                df.to_excel(str(ledger), index=False, engine="openpyxl")

                logger.info(f"Order {order_id} v{version} exported to {ledger}")

                result["success"] = True
                result["message"] = f"Order {order_id} exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for order {order_id}")

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout for order {order_id}")

        return result

    def read_orders(self, tenant_id: str) -> list[dict[str, Any]]:
        """All ledger rows of a tenant, in ledger order."""
        ledger = self.ledger_path(tenant_id)
        if not ledger.exists():
            return []
        with self._lock_for(ledger):
            df = self._load_or_create_df(ledger)
        return df.to_dict("records")

    def clear(self, tenant_id: Optional[str] = None) -> None:
        """Remove one tenant's ledger, or every ledger when no tenant is given."""
        ledgers = [self.ledger_path(tenant_id)] if tenant_id else self.data_dir.glob(f"*/{LEDGER_FILENAME}")
        for ledger in ledgers:
            for f in (ledger, Path(str(ledger) + ".lock")):
                if f.exists():
                    f.unlink()
        logger.info("Order ledgers cleared")


@lru_cache()
def get_order_exporter() -> OrderLedgerExporter:
    settings = get_settings()
    return OrderLedgerExporter(
        data_dir=Path(settings.data_directory),
        lock_timeout=settings.excel_lock_timeout,
    )
