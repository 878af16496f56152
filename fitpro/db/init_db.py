import logging

from fitpro.db.session import engine
from fitpro.db.base import Base
import fitpro.db.models  # noqa: F401  registers every model on Base.metadata

logger = logging.getLogger(__name__)


def init_db(bind=engine):
    """Create any missing tables."""
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ensured")
