#!/usr/bin/env python3
"""
Health check script for the watermark synchronizer.

This script checks everything a cycle depends on, without emitting events:
- Configuration and statement validation
- Destination cluster health and watermark resolution
- Source database connectivity

Usage:
    python scripts/health_check.py [--config CONFIG_PATH] [--json]

Exit codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import json
import sys
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import text

from watermark_sync.destination.query_builder import MaxWatermarkQuery
from watermark_sync.models.config import AppConfig
from watermark_sync.models.watermark import Abort
from watermark_sync.providers import get_destination_client, get_source_engine
from watermark_sync.sync.query_binder import QueryBinder
from watermark_sync.sync.watermark_resolver import WatermarkResolver
from watermark_sync.utils.config_loader import ConfigLoader

log = structlog.stdlib.get_logger()


class HealthChecker:
    """Performs health checks on the synchronizer's collaborators."""

    def __init__(self, config_path: str | None = None):
        self.config_path = config_path
        self.config: AppConfig | None = None
        self.results: dict[str, dict[str, Any]] = {}

    def check_configuration(self) -> bool:
        check_name = "configuration"
        log.info("checking_configuration")

        try:
            self.config = ConfigLoader().load_config(self.config_path)
            binder = QueryBinder.from_config(self.config.query)

            self.results[check_name] = {
                "status": "pass",
                "message": "Configuration loaded and statement validated",
                "details": {
                    "watermark_field": self.config.watermark.field,
                    "index": self.config.watermark.index,
                    "schedule": self.config.schedule.expression or "one-shot",
                    "statement_chars": len(binder.statement),
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Configuration error: {e}",
                "details": {},
            }
            return False

    def check_destination(self) -> bool:
        check_name = "destination"
        log.info("checking_destination")

        if self.config is None:
            self.results[check_name] = _skipped("configuration failed")
            return False

        try:
            spec = self.config.watermark.to_spec()
            client = get_destination_client(self.config.destination)
            resolved = WatermarkResolver(client, spec, self.config.destination).resolve()

            if isinstance(resolved, Abort):
                self.results[check_name] = {
                    "status": "fail",
                    "message": f"Watermark resolution aborted in phase {resolved.phase}",
                    "details": {"reason": resolved.reason},
                }
                return False

            self.results[check_name] = {
                "status": "pass",
                "message": "Destination is healthy and the watermark resolved",
                "details": {
                    "watermark": resolved.model_dump(),
                    "query": json.dumps(MaxWatermarkQuery.for_spec(spec).to_body()),
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Destination check failed: {e}",
                "details": {},
            }
            return False

    def check_source(self) -> bool:
        check_name = "source"
        log.info("checking_source")

        if self.config is None:
            self.results[check_name] = _skipped("configuration failed")
            return False

        try:
            engine = get_source_engine(self.config.source)
            with engine.connect() as connection:
                connection.execute(text("SELECT 1")).scalar()

            self.results[check_name] = {
                "status": "pass",
                "message": "Source database is reachable",
                "details": {"backend": engine.dialect.name},
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Source connection failed: {e}",
                "details": {},
            }
            return False

    def run_all_checks(self) -> bool:
        results = [self.check_configuration(), self.check_destination(), self.check_source()]
        return all(results)

    def get_summary(self) -> dict[str, Any]:
        failed = sum(1 for r in self.results.values() if r["status"] == "fail")
        return {
            "timestamp": datetime.now().isoformat(),
            "overall_status": "healthy" if failed == 0 else "unhealthy",
            "total_checks": len(self.results),
            "passed": sum(1 for r in self.results.values() if r["status"] == "pass"),
            "failed": failed,
            "skipped": sum(1 for r in self.results.values() if r["status"] == "skip"),
            "checks": self.results,
        }


def _skipped(reason: str) -> dict[str, Any]:
    return {"status": "skip", "message": f"Skipped: {reason}", "details": {}}


def main():
    """Main entry point for health check script."""
    parser = argparse.ArgumentParser(description="Health check for the watermark synchronizer")
    parser.add_argument("--config", type=str, help="Path to configuration file", default=None)
    parser.add_argument("--json", action="store_true", help="Output results in JSON format")

    args = parser.parse_args()

    checker = HealthChecker(config_path=args.config)
    all_passed = checker.run_all_checks()
    summary = checker.get_summary()

    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        print("\n" + "=" * 60)
        print("HEALTH CHECK SUMMARY")
        print("=" * 60)
        print(f"Overall Status: {summary['overall_status'].upper()}")
        print(f"Passed: {summary['passed']}  Failed: {summary['failed']}  Skipped: {summary['skipped']}")

        for check_name, result in summary["checks"].items():
            status_symbol = {"pass": "✓", "fail": "✗", "skip": "○"}.get(result["status"], "?")
            print(f"\n{status_symbol} {check_name.replace('_', ' ').title()}")
            print(f"  Message: {result['message']}")
            for key, value in result["details"].items():
                print(f"    - {key}: {value}")

        print("\n" + "=" * 60)

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
