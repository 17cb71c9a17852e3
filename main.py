"""Main entry point for running the Vigil service."""

import contextlib
import math
import os
import sys
from collections.abc import Generator
from types import FrameType

import uvicorn
from loguru import logger

from src.api.main import app
from src.api.services import Services
from src.core.config import get_settings
from src.core.logging import setup_logging
from src.core.shutdown import ShutdownSequencer

# Route uvicorn's own loggers through Loguru; access logging is done by the pipeline
LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {
            "class": "src.core.logging.InterceptHandler",
        },
    },
    "loggers": {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


class GracefulServer(uvicorn.Server):
    """Uvicorn server that starts draining the pipeline on SIGINT/SIGTERM.

    Uvicorn then stops listening, waits for in-flight requests and runs the
    lifespan shutdown, which closes the sequencer. The captured signals are
    dropped once the server has stopped so ``main()`` can exit with the
    sequencer's code.
    """

    def __init__(self, config: uvicorn.Config, sequencer: ShutdownSequencer) -> None:
        super().__init__(config)
        self.sequencer = sequencer

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        """Begin draining, then let uvicorn run its own shutdown."""
        self.sequencer.begin_draining(f"signal {sig}")
        super().handle_exit(sig, frame)

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None]:
        """Install the exit handlers without re-raising the signals afterwards.

        The process exit code comes from the shutdown sequencer, so a signal that
        has already been handled must not terminate the process a second time.
        """
        with super().capture_signals():
            try:
                yield
            finally:
                self._captured_signals.clear()


def main() -> None:
    """Main entry point for the Vigil service."""
    settings = get_settings()
    setup_logging(settings)

    # Container platforms set PORT to the port the service should listen on
    port = int(os.environ.get("PORT", settings.api_port))

    timeout = settings.shutdown_timeout_seconds
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=port,
        log_config=LOG_CONFIG,
        access_log=False,
        timeout_graceful_shutdown=math.ceil(timeout) if timeout else None,
    )

    services: Services = app.state.services
    server = GracefulServer(config, services.sequencer)

    logger.info(
        "Starting Uvicorn on http://{}:{} ({})",
        settings.api_host,
        port,
        settings.environment,
    )
    server.run()

    exit_code = services.sequencer.exit_code
    logger.info("Exiting with code {}", exit_code)
    logger.complete()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
