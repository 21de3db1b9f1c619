"""
Lending system wiring and shared endpoint helpers
"""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException

from ..audit import AuditTrail
from ..config import LendingConfig, get_config
from ..errors import LoanClosedError, LoanNotFoundError
from ..loans import LoanManager
from ..storage import create_storage, normalize_timestamp
from ..sweep import InterestSweep


class LendingSystem:
    """Lending engine with all components initialized"""

    def __init__(self, config: Optional[LendingConfig] = None, storage_backend: Optional[str] = None):
        self.config = config or get_config()

        self.storage = create_storage(
            storage_backend or self.config.storage_backend,
            self.config.database_path
        )
        self.audit_trail = AuditTrail(self.storage)
        self.loan_manager = LoanManager(self.storage, self.audit_trail, self.config)
        self.interest_sweep = InterestSweep(self.loan_manager)


# Global lending system instance
lending_system = LendingSystem()


# Dependency to get lending system
def get_lending_system() -> LendingSystem:
    return lending_system


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Optional ISO timestamp from a request body"""
    if value is None:
        return None
    return normalize_timestamp(value)


def to_http_exception(error: ValueError) -> HTTPException:
    """Map a domain error to its HTTP status"""
    if isinstance(error, LoanNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, LoanClosedError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))

