import os

import uvicorn

from guide_sync.config import settings
from utils.logging_utils import get_tagged_logger, mask_url, setup_logging

logger = get_tagged_logger(__name__, tag="server")


def log_startup() -> None:
    """Log where guides are stored and fetched from."""
    logger.info(
        "Starting guide sync (store=%s at %s, resources from %s)",
        settings.store_backend,
        mask_url(settings.store_database_url),
        mask_url(settings.resource_base_url),
    )
    if settings.simulate_offline:
        logger.warning("Simulated offline mode is on (GUIDE_SIMULATE_OFFLINE=true)")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, job_name="guide_sync")
    log_startup()

    uvicorn.run(
        "guide_sync.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
