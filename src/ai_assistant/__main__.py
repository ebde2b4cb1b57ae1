"""Run the API server: ``python -m ai_assistant``."""

import os

import uvicorn

from .config import get_settings


def main() -> None:
    uvicorn.run(
        "ai_assistant.api.app:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=get_settings().LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
