"""Entry point: python -m edc_connector [variables.json]"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from edc_connector.core.logging import configure_logging
from edc_connector.edc.errors import ErrorKind
from edc_connector.edc.models import WorkflowResult
from edc_connector.edc.workflow import run_workflow


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="edc-connector",
        description=(
            "Run the EDC consumer workflow (catalog, negotiation, transfer, data "
            "retrieval) for one asset and print the result record as JSON."
        ),
    )
    parser.add_argument(
        "variables",
        nargs="?",
        type=argparse.FileType("r", encoding="utf-8"),
        default=sys.stdin,
        help="JSON file with the workflow variables (default: stdin)",
    )
    return parser.parse_args(argv)


def _print_result(result: WorkflowResult) -> None:
    print(json.dumps(result.to_response(), default=str))


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()

    try:
        variables = json.load(args.variables)
    except json.JSONDecodeError as exc:
        _print_result(WorkflowResult.failure(f"Invalid variables JSON: {exc}", ErrorKind.VALIDATION))
        return 1

    if not isinstance(variables, dict):
        _print_result(
            WorkflowResult.failure("Workflow variables must be a JSON object", ErrorKind.VALIDATION)
        )
        return 1

    result = run_workflow(variables)
    _print_result(result)
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
