"""
Command-line entry point.

Usage:
    repair-planner                         # plan the built-in sample fault
    repair-planner --faults faults.json    # plan a batch of faults
    python -m repair_planner --log-level DEBUG

Exit codes:
    0  every fault produced a persisted work order
    1  a fault failed or the run aborted
    2  configuration or input error
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from repair_planner.composition import build_orchestrator
from repair_planner.config import Settings, get_settings
from repair_planner.exceptions import ConfigurationError, InvalidFaultError, RepairPlannerError
from repair_planner.models import DiagnosedFault, Severity

logger = logging.getLogger("repair_planner")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

SAMPLE_FAULT = DiagnosedFault(
    machine_id="M-123",
    fault_type="curing_temperature_excessive",
    root_cause="Heater element drift",
    severity=Severity.HIGH,
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


def load_faults(path: Path) -> List[DiagnosedFault]:
    """Read one fault object or a list of them from a JSON file.

    Raises:
        InvalidFaultError: If the file is unreadable or a fault is malformed
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidFaultError(f"Could not read faults from {path}: {e}")

    items = raw if isinstance(raw, list) else [raw]
    faults = []
    for index, item in enumerate(items):
        try:
            faults.append(DiagnosedFault.model_validate(item))
        except ValidationError as e:
            raise InvalidFaultError(
                f"Fault #{index} in {path} is invalid: {e}", context={"index": index}
            )
    return faults


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")
    sys.stdout.flush()


async def run(
    settings: Settings,
    faults: Optional[List[DiagnosedFault]],
    max_concurrency: int = 4,
) -> int:
    orchestrator = await build_orchestrator(settings)

    try:
        if faults is None:
            logger.info("Starting Repair Planner demo...")
            work_order = await orchestrator.plan_and_create_work_order(SAMPLE_FAULT)
            _emit(work_order.model_dump(mode="json", by_alias=True))
            return EXIT_OK

        report = await orchestrator.run_batch(faults, max_concurrency=max_concurrency)
        _emit([outcome.to_dict() for outcome in report.outcomes])
        return EXIT_OK if report.all_succeeded else EXIT_FAILURE
    finally:
        await orchestrator.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repair-planner",
        description="Turn diagnosed equipment faults into persisted repair work orders.",
    )
    parser.add_argument(
        "--faults",
        type=Path,
        help="JSON file with one diagnosed fault or a list of them (default: built-in sample)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=4,
        help="Maximum faults planned at the same time (default: 4)",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or "INFO")

    try:
        settings = get_settings()
        if not args.log_level:
            logging.getLogger().setLevel(settings.log_level)
        faults = load_faults(args.faults) if args.faults else None
    except (ConfigurationError, InvalidFaultError) as e:
        logger.error(f"[{e.error_code}] {e.message}")
        return EXIT_USAGE

    try:
        return asyncio.run(run(settings, faults, max_concurrency=args.max_concurrency))
    except RepairPlannerError as e:
        logger.error(f"Repair planner run failed: {json.dumps(e.to_dict(), default=str)}")
        return EXIT_FAILURE
    except Exception:
        logger.exception("Unhandled exception running Repair Planner")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
