"""Temporal worker for work order closeouts.

Polls the closeout task queue and runs WorkOrderCloseoutWorkflow together with
its activities, which read and write the configured SQLite database.

    fleet-worker                 # FLEET_TASK_QUEUE
    fleet-worker -q closeout-2   # another queue
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from temporalio.client import Client
from temporalio.worker import Worker

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.work_orders import build_work_order_report, complete_work_order, set_activity_service
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger, with_correlation
from reconciliation.service import get_default_service
from temporal_client import get_temporal_client
from workflows.closeout_workflow import WorkOrderCloseoutWorkflow

logger = get_logger(__name__)

WORKFLOWS = [WorkOrderCloseoutWorkflow]
ACTIVITIES = [build_work_order_report, complete_work_order]


def build_worker(client: Client, task_queue: str) -> Worker:
    return Worker(client, task_queue=task_queue, workflows=WORKFLOWS, activities=ACTIVITIES)


async def run_worker(queue: Optional[str] = None) -> None:
    settings = get_settings()
    task_queue = queue or settings.task_queue

    # Activities share one service bound to the configured database
    service = get_default_service()
    set_activity_service(service)

    client = await get_temporal_client(settings)
    with with_correlation(operation="worker"):
        logger.info(
            "Closeout worker polling",
            extra_fields={
                "namespace": client.namespace,
                "task_queue": task_queue,
                "db_path": str(service.store.db_path),
                "activities": [a.__name__ for a in ACTIVITIES],
            },
        )
        try:
            await build_worker(client, task_queue).run()
        except Exception:
            logger.exception("Closeout worker stopped on error")
            raise


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the work order closeout worker")
    parser.add_argument("--queue", "-q", default=None, help="task queue (default: FLEET_TASK_QUEUE)")
    args = parser.parse_args()

    configure_logging()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Closeout worker stopped")


if __name__ == "__main__":
    main()
