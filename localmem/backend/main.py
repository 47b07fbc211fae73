"""Entry point for running the localmem backend server."""

from dataclasses import replace

import uvicorn

from localmem.backend.app import create_app
from localmem.backend.config import BackendConfig, get_config
from localmem.log_config import configure_logging, console_level, get_logger

log = get_logger("backend.main")

# loguru level -> nearest uvicorn log level
_UVICORN_LEVELS = {
    "TRACE": "trace",
    "DEBUG": "debug",
    "INFO": "info",
    "SUCCESS": "info",
    "WARNING": "warning",
    "ERROR": "error",
    "CRITICAL": "critical",
}


def resolve_config(host: str | None = None, port: int | None = None) -> BackendConfig:
    """Global config with optional host/port overrides (re-validated)."""
    config = get_config()
    if host is None and port is None:
        return config
    return replace(
        config,
        host=host if host is not None else config.host,
        port=port if port is not None else config.port,
    )


def uvicorn_log_level(level: str) -> str:
    return _UVICORN_LEVELS.get(level.upper(), "info")


def run(host: str | None = None, port: int | None = None, log_level: str | None = None) -> None:
    """Run the backend server with uvicorn.

    Args:
        host: Loopback bind address (default: LOCALMEM_HOST)
        port: Listen port (default: LOCALMEM_PORT)
        log_level: Console log level for both localmem and uvicorn

    Raises:
        ValueError: If host is not a loopback address
    """
    if log_level:
        configure_logging(level=log_level)
    config = resolve_config(host, port)

    app = create_app(config)
    log.info(f"Starting localmem on http://{config.host}:{config.port}")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=uvicorn_log_level(console_level()),
    )


def main() -> None:
    """Console-script entry point: settings come from the environment."""
    run()


if __name__ == "__main__":
    main()
