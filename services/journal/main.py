#!/usr/bin/env python3
# services/journal/main.py

import asyncio
import sys
from pathlib import Path

# ------------------------------------------------------------
# 1) Ensure repo root is on sys.path
# ------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# ------------------------------------------------------------
# 2) Imports
# ------------------------------------------------------------
from shared.logutil import LogUtil
from shared.setup_base import SetupBase

from services.journal.intel.orchestrator import run as orchestrator_run

SERVICE_NAME = "journal"

CONFIG_DEFAULTS = {
    "JOURNAL_PORT": "5000",
    "JOURNAL_DB_PATH": "",
    "APP_SESSION_SECRET": "",
    "DEFAULT_INITIAL_BALANCE": "10000",
    "CORS_ORIGINS": "",
}


# ------------------------------------------------------------
# Main lifecycle
# ------------------------------------------------------------
async def main():
    # -------------------------------------------------
    # Phase 1: bootstrap logger
    # -------------------------------------------------
    logger = LogUtil(SERVICE_NAME)
    logger.info("starting setup()", emoji="⚙️")

    # -------------------------------------------------
    # Load configuration
    # -------------------------------------------------
    setup = SetupBase(SERVICE_NAME, logger, defaults=CONFIG_DEFAULTS)
    config = await setup.load()

    # Promote logger (config-driven)
    logger.configure_from_config(config)
    logger.ok("configuration loaded", emoji="📄")

    if not config.get("APP_SESSION_SECRET"):
        logger.warn("APP_SESSION_SECRET not set; only gateway X-User headers will authenticate")

    # -------------------------------------------------
    # Start orchestrator (async)
    # -------------------------------------------------
    orch_task = asyncio.create_task(
        orchestrator_run(config, logger),
        name=f"{SERVICE_NAME}-orchestrator",
    )

    await orch_task
    logger.warn("orchestrator exited unexpectedly", emoji="⚠️")


# ------------------------------------------------------------
# Runtime wrapper: ensures clean Ctrl-C handling
# ------------------------------------------------------------
if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Shutting down gracefully…")
