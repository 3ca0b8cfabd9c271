# src/rankup/api/signals.py

"""Entry point for "stats changed" signals from the stats store."""

from fastapi import APIRouter, Depends

from rankup.dependencies import get_orchestrator
from rankup.schemas.signal import (
    PartyUpdateSummary,
    StatsUpdatedResponse,
    StatsUpdatedSignal,
)
from rankup.services.notification_dispatcher import DeliveryStatus
from rankup.services.party_update import (
    PartyUpdateOrchestrator,
    PartyUpdateOutcome,
    PartyUpdateState,
)

router = APIRouter(prefix="/signals", tags=["Signals"])


def _summarize(outcome: PartyUpdateOutcome) -> PartyUpdateSummary:
    # Last state before the orchestrator went back to idle.
    states = [s for s in outcome.states if s != PartyUpdateState.IDLE]
    final_state = states[-1] if states else PartyUpdateState.IDLE
    return PartyUpdateSummary(
        party_id=outcome.party_id,
        party_name=outcome.party_name,
        events=len(outcome.events),
        pushes_sent=sum(
            1 for r in outcome.dispatch_results if r.status == DeliveryStatus.SENT
        ),
        dispatch_failed=outcome.dispatch_failed,
        snapshot_persisted=outcome.snapshot_persisted,
        error=outcome.error,
        final_state=final_state.value,
    )


@router.post("/stats-updated", response_model=StatsUpdatedResponse)
async def stats_updated(
    signal: StatsUpdatedSignal,
    orchestrator: PartyUpdateOrchestrator = Depends(get_orchestrator),
) -> StatsUpdatedResponse:
    """
    Recompute every party leaderboard the user belongs to for the game.

    Signals may be delivered more than once; a repeated signal re-diffs
    against the snapshot stored by the first and notifies nobody twice.
    Per-party failures are reported in the response, never as an error status.
    """
    outcomes = await orchestrator.handle_stats_updated(signal.user_id, signal.game)
    return StatsUpdatedResponse(
        user_id=signal.user_id,
        game=signal.game,
        parties=[_summarize(o) for o in outcomes],
    )
