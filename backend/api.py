from dotenv import load_dotenv
load_dotenv()

import asyncio
import sys

from credit_core.billing.api import create_app
from credit_core.utils.config import config, EnvMode, LedgerBackend
from credit_core.utils.logger import logger

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

app = create_app(config)


if __name__ == "__main__":
    import uvicorn

    is_dev_env = config.ENV_MODE in [EnvMode.LOCAL, EnvMode.STAGING]
    # The in-memory ledger lives in one process
    workers = 1 if is_dev_env or config.LEDGER_BACKEND == LedgerBackend.MEMORY else 4

    logger.debug(f"Starting server on 0.0.0.0:8000 with {workers} workers")
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        workers=workers,
        loop="asyncio"
    )
