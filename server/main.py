"""Entry point: starts the NiceGUI server with the diary REST API mounted."""

import logging
import logging.handlers
import os

from nicegui import app, ui

from api import router
from database import init_db

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
LOG_DIR = os.environ.get("LOG_DIR", "/data" if os.path.isdir("/data") else ".")
LOG_FILE = os.path.join(LOG_DIR, "diary-maker.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3,
        ),
    ],
)
logger = logging.getLogger("diarymaker")

# Quiet noisy libraries
for name in ("watchfiles", "multipart", "sqlalchemy.engine"):
    logging.getLogger(name).setLevel(logging.WARNING)

# Mount the diary endpoint for the mobile app
app.include_router(router)

# Create tables and seed default thresholds on startup
app.on_startup(init_db)

logger.info("Starting diary service (log level %s, log file %s)", LOG_LEVEL, LOG_FILE)

ui.run(
    title="Diary Maker",
    port=int(os.environ.get("PORT", "8080")),
    storage_secret=os.environ.get("STORAGE_SECRET", "change-me-in-production"),
    show=False,
    reload=False,
)
