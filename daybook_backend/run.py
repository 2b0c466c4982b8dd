"""Development launcher: serves src.api.main:app with uvicorn."""

from __future__ import annotations


def main() -> None:
    """Start the API with uvicorn using HOST/PORT/LOG_LEVEL from the environment."""
    import uvicorn

    from src.api.config import get_config

    config = get_config()
    uvicorn.run(
        "src.api.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
