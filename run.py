import logging
import os
import sys

import uvicorn


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def main() -> int:
    _configure_logging()
    host = os.getenv("CLARITY_HOST", "127.0.0.1")
    port = int(os.getenv("CLARITY_PORT", "8000"))

    logging.getLogger(__name__).info("Starting Clarity API on %s:%d.", host, port)
    uvicorn.run("api.main:create_app", factory=True, host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
