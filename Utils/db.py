import logging
from urllib.parse import urlparse

from mongoengine import connect
from dotenv import load_dotenv

from Utils.config import get_env

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017/storefront_db"


def init_db(mongo_uri=None, mongo_client_class=None):
    """Connect the default mongoengine alias.

    Calling again with the same settings reuses the existing connection.
    """
    mongo_uri = mongo_uri or get_env("MONGODB_URI", DEFAULT_URI)

    # Auto-detect DB name from URI
    parsed = urlparse(mongo_uri)
    db_name = (parsed.path or "").lstrip("/").split("?")[0] or "storefront_db"

    options = {}
    if mongo_client_class is not None:
        options["mongo_client_class"] = mongo_client_class

    try:
        connect(db=db_name, host=mongo_uri, alias="default", **options)
        logger.info(f"✅ MongoDB connected successfully → {db_name}")
    except Exception as e:
        logger.error(f"❌ MongoDB connection error: {e}")
        raise
    return db_name
