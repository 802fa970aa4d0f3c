"""
Celery Tasks
Background export of order snapshots to the tenant ledgers.
"""

import asyncio
import logging
import time
import uuid

from kombu.exceptions import OperationalError

from app.celery_worker import celery_app
from app.core.config import get_settings
from app.core.exceptions import ConflictError, NotFoundError
from app.core.tenant_context import TenantContext
from app.database import worker_session
from app.schemas import OrderResponse
from app.services.order_export import get_order_exporter
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


async def _acknowledge(tenant_id: str, order_id: str, version: int) -> bool:
    """Mark the exported version as synced. False when the order moved on."""
    ctx = TenantContext.system(uuid.UUID(tenant_id))
    async with worker_session() as db:
        try:
            await OrderService(db).mark_synced(ctx, uuid.UUID(order_id), version)
        except (ConflictError, NotFoundError) as e:
            logger.info(f"Order {order_id} v{version} left pending: {e.message}")
            return False
    return True


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def export_order_snapshot(self, snapshot: dict) -> dict:
    """
    Export an order snapshot to its tenant ledger, then acknowledge it.

    Args:
        snapshot: ``OrderResponse`` dumped in JSON mode

    Returns:
        dict: Exporter result plus ``acknowledged``, task id and timing
    """
    task_id = self.request.id
    order_id = str(snapshot.get('id', 'unknown'))

    logger.info(f"Task {task_id}: exporting order {order_id} v{snapshot.get('version')}")
    start_time = time.time()

    result = get_order_exporter().export_order(snapshot)
    if not result['success']:
        # Lock timeout; let Celery retry with backoff
        raise RuntimeError(result['message'])

    result['acknowledged'] = asyncio.run(
        _acknowledge(str(snapshot['tenant_id']), order_id, int(snapshot['version']))
    )

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed
    logger.info(f"Task {task_id}: order {order_id} completed in {elapsed}s")
    return result


def queue_order_export(order: OrderResponse) -> None:
    """Queue the downstream export of an order, unless exports are disabled."""
    if not get_settings().order_export_enabled:
        logger.debug(f"Order export disabled; order {order.id} stays pending")
        return
    try:
        export_order_snapshot.delay(order.model_dump(mode="json"))
    except (OperationalError, RuntimeError) as e:
        # Broker or result backend unreachable; the order stays in the pending-sync list
        logger.warning(f"Could not queue export of order {order.id}: {e}")

