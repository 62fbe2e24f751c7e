"""Processing entry point: runs one pass over due workflow enrollments.

Called every minute by the scheduler (Celery beat, or any external
cron hitting the endpoint). Status codes let a monitor tell the
outcomes apart:

- 204: nothing was due
- 200: every processed enrollment succeeded (or was paused)
- 207: some sends succeeded and some failed
- 422: every attempted send failed
- 500: the due set could not be read
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.dependencies import get_channel_registry_dep, get_db
from core.constants import PassStatus
from core.logging_config import bind_pass_context, clear_pass_context
from messaging.registry import ChannelRegistry
from workflow.engine import WorkflowProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["processing"])


@router.post("/process-workflows")
async def process_workflows(
    db: AsyncSession = Depends(get_db),
    registry: ChannelRegistry = Depends(get_channel_registry_dep),
) -> Response:
    """
    Process every due enrollment once and return the pass summary.
    """
    bind_pass_context("http")
    try:
        summary = await WorkflowProcessor(db, registry=registry).process_due()
    finally:
        clear_pass_context()

    if summary.status == PassStatus.IDLE:
        return Response(status_code=summary.http_status)

    return JSONResponse(content=summary.to_dict(), status_code=summary.http_status)
