"""
Reconciliation background worker.

Runs a reconciliation pass at a fixed interval: restores local records the
reference generation could not save, confirms references the gateway lists as
paid, and expires overdue pending references.
"""
import signal
import threading
from typing import Any, Optional

import structlog

from ..config import get_settings
from ..core.exceptions import KPayError
from ..core.reconciliation import ReconciliationEngine, ReconciliationReport
from ..monitoring.logging import setup_logging
from ..services import build_services

logger = structlog.get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 300


def run_once(engine: ReconciliationEngine) -> Optional[ReconciliationReport]:
    """
    Run one reconciliation pass.

    Gateway and store failures are logged and the pass is skipped; the next
    interval tries again.
    """
    try:
        report = engine.run()
    except KPayError as e:
        logger.error("reconciliation_pass_failed", error=str(e), error_type=type(e).__name__)
        return None

    if report.has_discrepancies:
        logger.warning(
            "reconciliation_discrepancies_detected",
            unknown=report.unknown,
            conflicts=report.conflicts,
        )
    return report


def start_reconciliation_worker(
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    engine: Optional[ReconciliationEngine] = None,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """
    Start the reconciliation worker.

    Args:
        interval_seconds: Seconds between passes
        engine: Optional engine (built from the environment when omitted)
        stop_event: Optional event that stops the loop when set
    """
    stop_event = stop_event or threading.Event()
    services = None
    if engine is None:
        services = build_services(get_settings())
        engine = services.reconciliation_engine

    logger.info("reconciliation_worker_starting", interval_seconds=interval_seconds)

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("reconciliation_worker_shutdown_signal_received", signal=sig)
        stop_event.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    try:
        while not stop_event.is_set():
            run_once(engine)
            stop_event.wait(interval_seconds)
    finally:
        if services is not None:
            services.close()
        logger.info("reconciliation_worker_stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="KPay reconciliation worker")
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL_SECONDS,
        help="Seconds between reconciliation passes",
    )
    args = parser.parse_args()

    setup_logging()
    start_reconciliation_worker(interval_seconds=args.interval)
