"""Call relay - service entry point."""

import uvicorn

from .config import get_settings


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "callrelay.api.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
