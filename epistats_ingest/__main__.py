"""Entry point for the ingestion run.

Usage::

    python -m epistats_ingest --mode local --file-path ./20230501data.xlsx
    python -m epistats_ingest --mode remote --login-type password \\
        --server imap.example.com --user me --password ... --query 'SUBJECT "data"'

Every flag can also be supplied through the environment (see ``config``).
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

import structlog

from .config import AppMode, IngestConfig, LoginMethod, load_config
from .errors import ConfigurationError, DataAlreadyCurrent, IngestError
from .logging import setup_logging
from .pipeline import IngestPipeline

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epistats-ingest",
        description="Extract the published statistics workbook into JSON files.",
    )
    parser.add_argument("--mode", choices=[m.value for m in AppMode], help="Operating mode")
    parser.add_argument(
        "--login-type",
        choices=[m.value for m in LoginMethod],
        help="How to log in to the IMAP server",
    )
    parser.add_argument("--server", help="IMAP server address")
    parser.add_argument("--port", type=int, help="IMAP server port (default 993)")
    parser.add_argument("--user", help="IMAP user name")
    parser.add_argument("--password", help="Password for password login")
    parser.add_argument("--auth-url", help="OAuth2 authorization URL")
    parser.add_argument("--token-url", help="OAuth2 token URL")
    parser.add_argument("--client-id", help="OAuth2 client ID")
    parser.add_argument("--client-secret", help="OAuth2 client secret")
    parser.add_argument("--refresh-token", help="OAuth2 refresh token")
    parser.add_argument("--query", help="IMAP SEARCH criteria")
    parser.add_argument(
        "--fetch-size",
        type=int,
        help="Maximum number of messages fetched at once (default 4)",
    )
    parser.add_argument("--file-path", help="Spreadsheet to use in local mode")
    parser.add_argument("--data-dir", help="Output directory (default ./data)")
    parser.add_argument("--tmp-dir", help="Scratch directory for downloads (default ./tmp)")
    parser.add_argument("--log-level", help="Log level (default INFO)")
    parser.add_argument(
        "--console-log",
        action="store_true",
        default=None,
        help="Human-readable log output instead of JSON lines",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> IngestConfig:
    return load_config(
        mode=args.mode,
        file_path=args.file_path,
        data_dir=args.data_dir,
        tmp_dir=args.tmp_dir,
        log_level=args.log_level,
        log_json=None if args.console_log is None else not args.console_log,
        imap={
            "host": args.server,
            "port": args.port,
            "username": args.user,
            "login_type": args.login_type,
            "password": args.password,
            "query": args.query,
            "fetch_size": args.fetch_size,
        },
        oauth2={
            "auth_url": args.auth_url,
            "token_url": args.token_url,
            "client_id": args.client_id,
            "client_secret": args.client_secret,
            "refresh_token": args.refresh_token,
        },
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        setup_logging(json=False)
        logger.error("configuration_invalid", error=str(exc))
        return exc.exit_code

    setup_logging(json=config.log_json, level=config.log_level)

    try:
        IngestPipeline(config).run()
    except DataAlreadyCurrent as exc:
        logger.info("data_already_current", detail=str(exc))
        return exc.exit_code
    except IngestError as exc:
        logger.error("ingest_failed", kind=type(exc).__name__, error=str(exc))
        return exc.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
