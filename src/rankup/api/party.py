# src/rankup/api/party.py

"""API endpoints for party leaderboards and the completed-party job."""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rankup.db.models import Party
from rankup.db.session import get_db
from rankup.dependencies import get_completion_service
from rankup.exceptions import PartyNotFoundError
from rankup.schemas.leaderboard import LeaderboardEntry, PartyLeaderboard
from rankup.schemas.signal import CompletionRunRequest, CompletionRunResponse
from rankup.services.party_completion import PartyCompletionService
from rankup.services.party_update import load_snapshot

router = APIRouter(prefix="/parties", tags=["Parties"])


@router.get("/{party_id}/leaderboard", response_model=PartyLeaderboard)
async def get_party_leaderboard(
    party_id: int, db: AsyncSession = Depends(get_db)
) -> PartyLeaderboard:
    """
    Get the stored ranking snapshot of a party.

    A party that has never been ranked returns an empty leaderboard.

    Raises:
        404: If the party doesn't exist
    """
    query = (
        select(Party)
        .where(Party.id == party_id)
        .options(selectinload(Party.snapshot))
    )
    party = (await db.execute(query)).scalar_one_or_none()
    if party is None:
        raise PartyNotFoundError(party_id)

    snapshot = load_snapshot(party.snapshot)
    if snapshot is None:
        return PartyLeaderboard(
            party_id=party.id, party_name=party.name, game=party.game
        )

    return PartyLeaderboard(
        party_id=party.id,
        party_name=party.name,
        game=party.game,
        entries=[LeaderboardEntry.model_validate(m) for m in snapshot.entries],
        top3=[LeaderboardEntry.model_validate(m) for m in snapshot.top3],
        taken_at=snapshot.taken_at,
        version=party.snapshot.version,
    )


@router.post("/completions", response_model=CompletionRunResponse)
async def run_party_completions(
    run: CompletionRunRequest | None = None,
    service: PartyCompletionService = Depends(get_completion_service),
) -> CompletionRunResponse:
    """
    Announce the final standings of parties that ended yesterday.

    Meant to be triggered once a day by a scheduler. Each party is announced
    only once, so repeated runs are harmless.

    - **today**: Run as of this date instead of the current date
    """
    today = run.today if run and run.today else date.today()
    report = await service.notify_completed_parties(today)
    return CompletionRunResponse(
        checked=report.checked,
        completed=report.completed,
        failed=report.failed,
    )
