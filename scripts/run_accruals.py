"""Run one batch accrual pass for a rebate program, e.g. from cron.

Usage:
    python scripts/run_accruals.py VOL-REBATE --period-type quarterly
    python scripts/run_accruals.py VOL-REBATE --start 2026-01-01 --end 2026-01-31T23:59:59 --finalize

Exit status is 0 when every dealer succeeded, 1 when some dealers failed and
2 when the run could not start.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import Sequence

from rebateflow.core.config import AppSettings
from rebateflow.core.exceptions import RebateFlowError
from rebateflow.core.logging import configure_logging
from rebateflow.services import RebateEngine

logger = logging.getLogger("rebateflow.scripts.run_accruals")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run batch rebate or co-op accruals for one program")
    parser.add_argument("program", help="Program id or code")
    parser.add_argument("--period-type", choices=["monthly", "quarterly", "annual"], default=None,
                        help="Calendar period containing today (default from settings)")
    parser.add_argument("--start", type=datetime.fromisoformat, default=None, help="Explicit period start")
    parser.add_argument("--end", type=datetime.fromisoformat, default=None, help="Explicit period end")
    parser.add_argument("--recalculate", action="store_true", help="Overwrite finalized or paid accruals")
    parser.add_argument("--finalize", action="store_true", help="Finalize the period after the run")
    parser.add_argument("--coop", action="store_true", help="Accrue a co-op fund program instead of a rebate")
    return parser


def run(argv: Sequence[str] | None = None, engine: RebateEngine | None = None) -> int:
    args = build_parser().parse_args(argv)
    if (args.start is None) != (args.end is None):
        print("--start and --end must be given together", file=sys.stderr)
        return 2

    if engine is None:
        settings = AppSettings()
        configure_logging(settings)
        engine = RebateEngine.from_settings(settings)

    cancel = threading.Event()
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGTERM, lambda *_: cancel.set())

    try:
        runner = engine.coop if args.coop else engine.batch
        result = runner.run(
            args.program,
            period_type=args.period_type,
            period_start=args.start,
            period_end=args.end,
            recalculate=args.recalculate,
            cancel_event=cancel,
        )
    except (RebateFlowError, ValueError) as exc:
        logger.error("Accrual run for %s did not start: %s", args.program, exc)
        return 2
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)

    print(
        f"{result.run_id}: {result.processed_count} dealers, "
        f"accrued {result.total_accrued}, payable {result.total_final}, {len(result.errors)} errors"
    )
    for err in result.errors:
        print(f"  {err.dealer_id}: {err.error}")

    if args.finalize and not result.cancelled:
        finalized = engine.finalizer.finalize(args.program, result.period_start, result.period_end)
        print(f"Finalized {finalized.count} accruals totalling {finalized.total_amount}")

    return 1 if result.errors or result.cancelled else 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
