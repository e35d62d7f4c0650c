"""Entry point: builds the configured stages, runs a cycle, writes the report."""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

import httpx

from pmcr.clients import build_stages
from pmcr.config import CycleConfig, get_config
from pmcr.history import analyze_history
from pmcr.models import CycleResult, CycleStatus, Intent
from pmcr.orchestrator import CycleOrchestrator
from pmcr.utils.formatter import result_to_dict, write_report


async def _run_async(intent: Intent, single_pass: bool) -> CycleResult:
    config = get_config()
    cycle_config = CycleConfig.from_config(config)

    async with httpx.AsyncClient(timeout=cycle_config.per_stage_timeout) as http:
        orchestrator = CycleOrchestrator.from_stages(build_stages(config, http=http))
        if single_pass:
            return await orchestrator.run_pass(intent, cycle_config)
        return await orchestrator.run_cycle(intent, cycle_config)


def run(
    content: str,
    context: dict[str, str] | None = None,
    single_pass: bool = False,
    as_json: bool = False,
) -> CycleResult:
    """Run one cycle on an intent string and write its report.

    Args:
        content: The intent text.
        context: Caller constraints passed to every stage (e.g. language=python).
        single_pass: Stop after one pass and report Converged/Iterating.
        as_json: Also print the full result as JSON on stdout.
    """
    intent = Intent(
        id=f"intent-{uuid.uuid4().hex[:8]}",
        content=content.strip(),
        context=context or {},
    )
    result = asyncio.run(_run_async(intent, single_pass))

    output_path = write_report(result)
    print(f"[PMCR] Status: {result.status.value}")
    print(f"[PMCR] Iterations: {result.iterations}")
    if result.error is not None:
        print(f"[PMCR] Error: {result.error}")
    print(f"[PMCR] Report written to: {output_path}")

    if as_json:
        print(json.dumps(result_to_dict(result), indent=2))
    return result


def analyze(path: str) -> dict:
    """Run historical trend analysis on a JSON file of cycle records and print the report."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    records = data.get("cycles", []) if isinstance(data, dict) else data
    report = analyze_history(records)
    print(json.dumps(report, indent=2))
    return report


def _parse_context(pair: str) -> tuple[str, str]:
    key, sep, value = pair.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Invalid --context entry '{pair}'. Expected KEY=VALUE.")
    return key.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pmcr",
        description="Run a Plan → Make → Check → Reflect cycle for an intent.",
    )
    parser.add_argument(
        "intent",
        nargs="*",
        help="Intent text (read from stdin when omitted)",
    )
    parser.add_argument(
        "--context",
        action="append",
        type=_parse_context,
        default=[],
        metavar="KEY=VALUE",
        help="Constraint passed to every stage, e.g. language=python (repeatable)",
    )
    parser.add_argument(
        "--single-pass",
        action="store_true",
        help="Stop after one pass and report Converged or Iterating",
    )
    parser.add_argument("--json", action="store_true", help="Also print the full result as JSON")
    parser.add_argument(
        "--analyze",
        metavar="RECORDS_JSON",
        help="Run historical trend analysis on a JSON file of cycle records and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point — accepts the intent as arguments or from stdin."""
    args = build_parser().parse_args(argv)

    if args.analyze:
        analyze(args.analyze)
        return

    if args.intent:
        content = " ".join(args.intent)
    else:
        print("Enter your intent (Ctrl+D / Ctrl+Z to submit):", file=sys.stderr)
        content = sys.stdin.read()

    result = run(content, context=dict(args.context), single_pass=args.single_pass, as_json=args.json)
    if result.status not in (CycleStatus.CONVERGED, CycleStatus.ITERATING):
        sys.exit(1)


if __name__ == "__main__":
    main()
