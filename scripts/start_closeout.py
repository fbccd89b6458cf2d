"""Start the work order closeout workflow.

Connects to Temporal, starts a WorkOrderCloseoutWorkflow for one work order
and prints the outcome.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.closeout_workflow import CloseoutInput, CloseoutOutput, WorkOrderCloseoutWorkflow


logger = get_logger(__name__)


async def start_closeout(work_order_id: str, actor_role: str, notes: str = None) -> CloseoutOutput:
    """Start the closeout workflow and wait for its result."""
    settings = get_settings()
    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    handle = await client.start_workflow(
        WorkOrderCloseoutWorkflow.run,
        CloseoutInput(work_order_id=work_order_id, actor_role=actor_role, notes=notes),
        task_queue=settings.task_queue,
        id=f"closeout-{work_order_id}",
    )
    logger.info(f"Workflow started: {handle.id}")

    return await handle.result()


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Start work order closeout workflow")
    parser.add_argument("work_order_id", help="Work order to close out")
    parser.add_argument("--role", default="ADMIN", help="Actor role (default: ADMIN)")
    parser.add_argument("--notes", default=None, help="Completion notes")
    args = parser.parse_args()

    configure_logging()
    try:
        result = asyncio.run(start_closeout(args.work_order_id, args.role, args.notes))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n=== CLOSEOUT RESULT ===")
    print(f"  work_order_id: {result.work_order_id}")
    print(f"  status:        {result.status}")
    print(f"  report_status: {result.report_status}")
    if result.error_code:
        print(f"  error:         {result.error_code} {result.message or ''}")
    if result.completed_at:
        print(f"  completed_at:  {result.completed_at}")
    print("=======================\n")
    return 0 if result.status == "COMPLETED" else 2


if __name__ == "__main__":
    sys.exit(main())
