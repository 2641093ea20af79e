"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hris_engine.attendance.civil_time import CivilClock, SystemClock
from hris_engine.calculators.tables import ContributionTableSet
from hris_engine.config import Settings, get_settings
from hris_engine.database import get_session


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency; commits when the handler succeeds."""
    async with get_session() as session:
        yield session


def get_clock(settings: Annotated[Settings, Depends(get_settings)]) -> CivilClock:
    return SystemClock(settings.utc_offset_hours)


def get_contribution_tables(request: Request) -> ContributionTableSet:
    """Current table set from the application's expiring cache.

    Kept synchronous so FastAPI runs a stale reload in its threadpool.
    """
    return request.app.state.contribution_tables.get()


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None
) -> int | None:
    """Extract the acting user's ID from header, if present."""
    if x_actor_id is None:
        return None
    try:
        return int(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-ID format",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Clock = Annotated[CivilClock, Depends(get_clock)]
Tables = Annotated[ContributionTableSet, Depends(get_contribution_tables)]
ActorId = Annotated[int | None, Depends(get_actor_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]
