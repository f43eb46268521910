#!/usr/bin/env python3
"""Run mapped Maestro flows and report their results into NexusQA."""

import argparse
import json
import logging
import os
import sys

sys.path.insert(0, ".")

from nexusqa.core.exceptions import ValidationError
from nexusqa.integrations.automation_runner import AutomationMapping, AutomationRunner, MaestroCli
from nexusqa.integrations.ledger_gateway import LedgerGateway, LedgerGatewayError

DEFAULT_BASE_URL = "http://localhost:5000"
DEFAULT_MAPPING_PATH = os.path.join("automation", "test-mapping.json")


def _timeout_from_env():
    raw = os.getenv("MAESTRO_TIMEOUT_SECONDS")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        print(f"[WARN] Ignoring invalid MAESTRO_TIMEOUT_SECONDS={raw!r}")
        return None


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run Maestro flows and report results to NexusQA.")
    parser.add_argument("--mapping", default=os.getenv("MAESTRO_MAPPING_PATH", DEFAULT_MAPPING_PATH),
                        help="Path to the test mapping JSON file")
    parser.add_argument("--base-url", default=os.getenv("NEXUSQA_BASE_URL", DEFAULT_BASE_URL),
                        help="NexusQA service base URL")
    parser.add_argument("--cli", default=os.getenv("MAESTRO_CLI_PATH", "maestro"),
                        help="Maestro CLI executable")
    parser.add_argument("--timeout", type=float, default=_timeout_from_env(),
                        help="Per-flow timeout in seconds (default: wait until exit)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[runner] %(levelname)s %(message)s",
    )

    api_key = os.getenv("AUTOMATION_API_KEY")
    if not api_key:
        print("[ERROR] Missing AUTOMATION_API_KEY in environment")
        return 1

    try:
        mapping = AutomationMapping.load(args.mapping)
    except ValidationError as exc:
        print(f"[ERROR] {exc}")
        print("Copy automation/test-mapping.example.json to automation/test-mapping.json and adjust values.")
        return 1

    runner = AutomationRunner(
        mapping,
        LedgerGateway(args.base_url, api_key),
        MaestroCli(args.cli, timeout=args.timeout),
    )
    try:
        summary = runner.run()
    except LedgerGatewayError as exc:
        print(f"[ERROR] Failed to create run: {exc}")
        if exc.body:
            print(exc.body)
        return 1

    print(f"[SUMMARY] {json.dumps(summary.to_dict())}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
