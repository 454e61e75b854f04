"""Entry point for running the billing core as a module.

    python -m billing_core                   # serve the API and run the scheduler
    python -m billing_core --migrate-only    # prepare the store and exit
"""

import argparse
import os
import sys

import uvicorn
from sqlalchemy.exc import SQLAlchemyError

from billing_core.config import Config
from billing_core.container import seed_store
from billing_core.db.migrations import apply_migrations, current_version
from billing_core.db.session import create_db_engine, create_session_factory
from billing_core.errors import ConfigurationError
from billing_core.logging_config import configure_logging, get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Billing Core - recurring billing scheduler and payment fulfillment service"
    )
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/billing.yaml"),
        help="Path to billing.yaml (default: config/billing.yaml)",
    )
    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL"),
        help="SQLAlchemy database URL, overrides database.url in billing.yaml",
    )
    parser.add_argument(
        "--migrate-only",
        action="store_true",
        help="Apply migrations, seed the catalog, and exit without serving",
    )
    return parser


def migrate(config_path: str) -> int:
    """Apply pending migrations and seed settings and catalog. Returns an exit code."""
    logger = get_logger("billing_core.migrate")
    try:
        config = Config(config_path)
        engine = create_db_engine(config.database_url, echo=config.settings.database.echo)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        applied = apply_migrations(engine)
        seed_store(create_session_factory(engine), config)
        logger.info("migrate_only_completed", applied=applied, schema_version=current_version(engine))
    except SQLAlchemyError as e:
        logger.error("migrate_only_failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        engine.dispose()
    return 0


def main() -> None:
    """Main entry point for the billing core service."""
    args = build_parser().parse_args()

    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url

    if args.migrate_only:
        configure_logging(log_level=args.log_level, json_format=args.log_format == "json")
        sys.exit(migrate(args.config))

    if args.log_format == "console":
        print(f"Billing Core on {args.host}:{args.port} (config: {args.config})")

    # One worker only: two processes would run two schedulers against one store.
    try:
        uvicorn.run(
            "billing_core.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            workers=1,
            access_log=False,
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)


if __name__ == "__main__":
    main()
