"""
Main entrypoint: run the Geyser ingestion agent (24/7) until SIGINT/SIGTERM.

Env: POSTGRES_DB_URL (required), GEYSER_ENDPOINT, GEYSER_X_TOKEN, GEYSER_ACCOUNTS,
GEYSER_COMMITMENT, PERSIST_FAILURE_POLICY, LOG_LEVEL, LOG_FORMAT. CLI flags override env;
see `python main.py --help`.

Installed console script: geyser-ingest
"""

from geyser_ingest.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
