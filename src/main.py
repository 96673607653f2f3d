"""Demo entrypoint wiring a table log handler into stdlib logging.

This module intentionally contains a small, end-to-end "smoke test" that:

- Loads configuration from environment (falls back to a demo table).
- Builds the handler for the configured backend.
- Logs a few records with and without the declared additional fields.
- Prints the resulting rows.

It is **not** intended to be production wiring; it is a convenient manual
harness for trying out schema changes between runs (edit
`TABLELOG_ADDITIONAL_COLUMNS` and run it again against the same database).
"""

from __future__ import annotations

import logging
import os

from loguru import logger

from config import Config, SinkConfig, StorageConfig, load_config
from tablelog.factory import build_handler


def _demo_config() -> Config:
    """Configuration used when TABLELOG_TABLE is not set."""
    return Config(
        sink=SinkConfig(table="demo_log", additional_columns=["username", "userid"]),
        storage=StorageConfig(database=os.getenv("TABLELOG_DATABASE", "demo_log.duckdb")),
    )


def main() -> None:
    logger.enable("tablelog")
    cfg = load_config() if os.getenv("TABLELOG_TABLE") else _demo_config()

    handler = build_handler(cfg.sink, cfg.storage)
    demo_logger = logging.getLogger("tablelog.demo")
    demo_logger.setLevel(logging.DEBUG)
    demo_logger.addHandler(handler)
    try:
        demo_logger.info("Test", extra={"username": "waza-ari", "userid": 1337})
        demo_logger.warning("Only a username", extra={"username": "waza-ari"})
        demo_logger.error("Unknown fields are dropped", extra={"item": "Cat", "id": 11})

        table = handler.schema.table
        rows = handler.executor.query_rows(f"SELECT * FROM {handler.dialect.quote(table)}")
        print(f"{table}: {handler.live_columns}")
        for row in rows:
            print(row)
    finally:
        demo_logger.removeHandler(handler)
        handler.close()


if __name__ == "__main__":
    main()
