# create_tables.py
import logging

from database import engine, Base
# Import every model so it registers with Base
from modules.contracts.models import User, Contract, Signature, ContractAuditEvent  # noqa: F401
from modules.notifications.models.notification import Notification  # noqa: F401

logger = logging.getLogger(__name__)


def create_tables():
    """Creates all tables in the database"""
    logger.info("🔍 Tables to create: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
