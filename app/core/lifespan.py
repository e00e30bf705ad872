from contextlib import asynccontextmanager
import logging

from app.services.workflow_service import close_workflow_service, get_workflow_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    config = get_workflow_service().config
    if not config.can_submit:
        logger.warning("coze_not_configured: set COZE_API_TOKEN and COZE_WORKFLOW_ID to enable /v1/run-workflow")
    else:
        logger.info("coze_configured base_url=%s workflow_id=%s", config.base_url, config.workflow_id)
    yield
    close_workflow_service()
