"""CLI entry point: one full-refresh sync of Entra users into Log Analytics."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from scripts.directory_ingestion.config import IngestionConfig, load_config
from scripts.directory_ingestion.errors import ConfigurationError
from scripts.directory_ingestion.log_analytics import LogAnalyticsClient
from scripts.directory_ingestion.logging_config import configure_logging
from scripts.directory_ingestion.pipeline import IngestionPipeline, RunResult
from scripts.directory_ingestion.providers.entra_users import EntraUserProvider

logger = logging.getLogger("ingestion.cli")


def build_pipeline(config: IngestionConfig) -> IngestionPipeline:
    provider = EntraUserProvider(
        config.graph, mapping_error_policy=config.mapping_error_policy
    )
    client = LogAnalyticsClient(config.log_analytics)
    return IngestionPipeline(
        config.log_analytics,
        provider,
        client,
        progress_log_interval=config.progress_log_interval,
    )


def run_once(config: IngestionConfig, table_name: Optional[str] = None) -> RunResult:
    pipeline = build_pipeline(config)
    return pipeline.run(table_name)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="directory-ingestion",
        description="Export licensed Entra ID member users to a Log Analytics table",
    )
    parser.add_argument(
        "table",
        nargs="?",
        default=None,
        help="Log Analytics custom table name, without the _CL suffix "
             "(default: LOG_ANALYTICS_TABLE or AzureADUsers)",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(table_name=args.table)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"), secrets=[config.log_analytics.shared_key]
    )

    result = run_once(config, args.table)
    if result.succeeded:
        print(f"Wrote {result.rows_written} rows to {config.log_analytics.table_name}_CL")
    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
