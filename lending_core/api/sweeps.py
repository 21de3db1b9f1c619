"""
Interest sweep endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import LendingSystem, get_lending_system, parse_timestamp, to_http_exception
from .schemas import InterestSweepRequest
from ..sweep import InterestSweep


router = APIRouter()


@router.post("/interest")
async def run_interest_sweep(
    request: Optional[InterestSweepRequest] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Accrue interest and assess late fees across all open loans"""
    try:
        as_of = parse_timestamp(request.as_of) if request else None
    except ValueError as e:
        raise to_http_exception(e)

    sweep = system.interest_sweep
    if request and request.open_ended_only is not None:
        sweep = InterestSweep(system.loan_manager, open_ended_only=request.open_ended_only)

    return sweep.run(as_of).to_dict()
