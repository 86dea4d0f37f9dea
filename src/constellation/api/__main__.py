# src/constellation/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from constellation.env import load_dotenv_if_present


def main() -> None:
    # Load .env before anything reads CONSTELLATION_* vars.
    load_dotenv_if_present()

    from constellation.api.app import create_app

    host = os.getenv("CONSTELLATION_API_HOST", "127.0.0.1")
    port = int(os.getenv("CONSTELLATION_API_PORT", "8000"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
