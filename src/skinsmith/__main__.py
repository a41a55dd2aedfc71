"""Entry point for the standalone service process."""

import uvicorn

from skinsmith.config import settings
from skinsmith.main import app


def main() -> None:
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
