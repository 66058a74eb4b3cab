"""HTTP entrypoint: python main.py, or uvicorn main:app."""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

import uvicorn

from api.app import create_app
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.wiring import build_services

logging.basicConfig(
    level=os.getenv("CASENOTE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(build_services(PostgresClient(get_database_url())))


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("CASENOTE_HOST", "127.0.0.1"), port=int(os.getenv("CASENOTE_PORT", "8000")))
