"""Shared dependencies and error mapping for the HTTP layer."""

from typing import TypeVar

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.database import get_session
from settlement.engine.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFound,
    SettlementResult,
    ValidationError,
)
from settlement.engine.settlement import SettlementService

T = TypeVar("T")

ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    NotFound: 404,
    InvalidTransition: 409,
    ConcurrencyConflict: 409,
}


async def get_service(session: AsyncSession = Depends(get_session)) -> SettlementService:
    return SettlementService(session)


def unwrap(result: SettlementResult[T]) -> T:
    """Return the result's value or raise the matching HTTP error."""
    if result.ok:
        return result.value
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(result.error, cls)),
        500,
    )
    raise HTTPException(status_code=status_code, detail=result.error.to_dict())
