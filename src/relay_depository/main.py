"""Main entry point - serves the depository API."""

import asyncio
import logging
import signal

import uvicorn

from relay_depository.api.app import create_app
from relay_depository.config import get_settings
from relay_depository.depository import RelayDepository
from relay_depository.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


class Application:
    """Runs the API server over one depository deployment."""

    def __init__(self):
        self.settings = get_settings()
        self.depository = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting relay depository...")
        logger.info(f"Environment: {self.settings.environment}")
        logger.info(f"Program: {self.settings.program_id}")

        await init_db()
        logger.info("Database initialized")

        self.depository = RelayDepository.create(settings=self.settings)
        config = await self.depository.get_config()
        if config is None:
            logger.warning(
                f"Depository not initialized; bootstrap owner is {self.settings.bootstrap_owner}"
            )
        if self.settings.relayer is None:
            logger.warning("RELAYER not set; POST /api/v1/transfers will answer 503")

        api_task = asyncio.create_task(self._run_api())
        logger.info("API task created")

        await self._shutdown_event.wait()

        api_task.cancel()
        await asyncio.gather(api_task, return_exceptions=True)

        await self._cleanup()

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app(self.depository)
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise
        finally:
            self._shutdown_event.set()

    async def _cleanup(self):
        logger.info("Cleaning up...")
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    app = Application()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
