"""Run the Task Tower API server with uvicorn."""

from __future__ import annotations

import logging

import uvicorn

from tasktower.backend.config import load_settings


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("tasktower.backend.api:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
