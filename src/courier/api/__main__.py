"""Entry point for running the Courier API as a module.

Usage:
    python -m courier.api

Host and port come from ``COURIER_API_HOST`` / ``COURIER_API_PORT``.
"""

import uvicorn

from courier.config import Settings


def main() -> None:
    settings = Settings()
    uvicorn.run(
        "courier.api:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
