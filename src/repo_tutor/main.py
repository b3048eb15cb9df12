from __future__ import annotations
import logging
import uvicorn
from repo_tutor.infrastructure.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


def main() -> None:
    """Start the uvicorn ASGI server."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "repo_tutor.interface.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
