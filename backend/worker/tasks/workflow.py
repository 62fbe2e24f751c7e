"""Celery task running the workflow processing pass.

Beat fires ``process_workflows`` every minute. Each run opens a fresh
event loop and a worker-safe session, processes the due enrollments
once and returns the pass summary so it lands in the result backend.
"""

import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_pass() -> dict:
    """Process due enrollments with a session bound to this loop."""
    from core.logging_config import bind_pass_context, clear_pass_context
    from db.worker_session import worker_session
    from workflow.engine import WorkflowProcessor

    bind_pass_context("beat")
    try:
        async with worker_session() as session:
            summary = await WorkflowProcessor(session).process_due()
    finally:
        clear_pass_context()
    return summary.to_dict()


@celery_app.task(
    name="worker.tasks.workflow.process_workflows",
    bind=True,
    acks_late=True,
    queue="workflows",
)
def process_workflows(self) -> dict:
    """Run one processing pass over due workflow enrollments."""
    logger.info("[process-workflows] Starting processing pass")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(_run_pass())
        logger.info(
            f"[process-workflows] Done: status={result.get('status')} "
            f"processed={result.get('processed', 0)}"
        )
        return result
    finally:
        loop.close()
