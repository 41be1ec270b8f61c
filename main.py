"""
Messenger Convo Bot — entrypoint.

One process, two things running in it:
  1. The webhook + admin surface (FastAPI on PORT)
  2. The locked-name watcher, started by the surface's startup hook

Configure with environment variables or a .env file; see core/config.py.
"""

import asyncio
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from core.config import Settings
from surface.app import create_app


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")
    settings = Settings.from_env()

    if not settings.page_access_token:
        logging.getLogger("main").warning("PAGE_ACCESS_TOKEN not set, replies will fail")

    app = create_app(settings)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host="0.0.0.0",
            port=settings.port,
            log_level="info",
        )
    )
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
