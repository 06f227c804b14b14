"""Run the API server: ``python -m newtube``."""

import uvicorn

from newtube.core.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "newtube.main:app",
        host=config.api_host,
        port=config.api_port,
        log_config=None,
        reload=config.is_development and config.debug,
    )


if __name__ == "__main__":
    main()
