"""
Interest Sweep Module

Batch job that brings every open loan's interest up to date and assesses
late fees. It is triggered from outside (a scheduler, the API, the CLI);
nothing here runs on a timer.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .audit import AuditEventType
from .loans import LoanManager
from .logging_config import get_logger, log_action
from .storage import normalize_timestamp


logger = get_logger("lending.sweep")


@dataclass
class SweepResult:
    """Outcome of one sweep run"""
    run_at: datetime
    processed: int = 0
    updated: int = 0
    late_fees_charged: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict:
        return {
            "run_at": self.run_at.isoformat(),
            "processed": self.processed,
            "updated": self.updated,
            "late_fees_charged": self.late_fees_charged,
            "failed": self.failed,
            "failures": dict(self.failures)
        }


class InterestSweep:
    """
    Accrues interest across all open loans

    Each loan is accrued independently on a thread pool; the loan manager's
    per-loan locks keep a sweep from racing a payment on the same loan. One
    loan failing is logged and reported without stopping the others.

    Loans carry no ordering between them, but the bundled storage backends
    hold one lock for each atomic block, so their writes still commit one
    at a time.
    """

    def __init__(
        self,
        manager: LoanManager,
        max_workers: Optional[int] = None,
        open_ended_only: Optional[bool] = None
    ):
        self.manager = manager
        config = manager.config
        self.max_workers = max_workers or config.sweep_max_workers
        self.open_ended_only = (
            config.sweep_open_ended_only if open_ended_only is None else open_ended_only
        )

    def _process_loan(self, loan_id: str, now: datetime) -> Tuple[bool, int]:
        _, accrual = self.manager.accrue_interest(loan_id, now)
        fees_charged = self.manager.assess_late_fee(loan_id, now)
        return accrual.has_new_interest, fees_charged

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Accrue every active or overdue loan up to ``now``

        Args:
            now: Point to accrue through (defaults to the current time)

        Returns:
            SweepResult with counts and failures keyed by loan ID
        """
        now = normalize_timestamp(now) if now is not None else datetime.now(timezone.utc)
        result = SweepResult(run_at=now)

        loans = [
            loan for loan in self.manager.list_loans()
            if loan.is_open and (loan.is_open_ended or not self.open_ended_only)
        ]

        if loans:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._process_loan, loan.id, now): loan.id
                    for loan in loans
                }
                for future in as_completed(futures):
                    loan_id = futures[future]
                    result.processed += 1
                    try:
                        updated, fees_charged = future.result()
                    except Exception as e:
                        result.failures[loan_id] = str(e)
                        log_action(
                            logger, "error", "Interest sweep failed for loan",
                            action="interest_sweep", resource=f"loan:{loan_id}",
                            extra={"error": type(e).__name__, "message": str(e)}
                        )
                        continue

                    if updated:
                        result.updated += 1
                    result.late_fees_charged += fees_charged

        if self.manager.config.enable_audit_logging:
            with self.manager.storage.atomic():
                self.manager.audit_trail.log_event(
                    event_type=AuditEventType.INTEREST_SWEEP_COMPLETED,
                    entity_type="sweep",
                    entity_id=now.isoformat(),
                    metadata=result.to_dict()
                )

        log_action(
            logger, "info", "Interest sweep completed",
            action="interest_sweep", resource="loans",
            extra={
                "processed": result.processed,
                "updated": result.updated,
                "late_fees_charged": result.late_fees_charged,
                "failed": result.failed
            }
        )
        return result
