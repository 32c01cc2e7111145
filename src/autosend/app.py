import logging

from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel

import autosend.constants as C
from autosend.batch import Confirmed
from autosend.scheduler import RunScheduler
from autosend.selector import SequentialSelector

log = logging.getLogger("autosend.app")

r_state = APIRouter(prefix="/state", tags=["State"])


class StateResp(BaseModel):
    state: str
    account: str
    mode: str
    rounds_started: int
    rounds_completed: int
    cursor: int
    last_outcome: str | None = None
    last_error: str | None = None
    last_round_at: float | None = None
    next_round_at: float | None = None


class OutcomeResp(BaseModel):
    address: str
    label: str | None = None
    status: str
    tx_hash: str | None = None
    block_number: int | None = None
    reason: str | None = None
    attempts: int | None = None


@r_state.get("", response_model=StateResp)
async def state(request: Request):
    s: RunScheduler = request.app.state.scheduler
    st = s.status
    return StateResp(
        state=st.state,
        account=s.account,
        mode=C.SelectionMode.SEQUENTIAL if isinstance(s.selector, SequentialSelector) else C.SelectionMode.RANDOM,
        rounds_started=st.rounds_started,
        rounds_completed=st.rounds_completed,
        cursor=st.cursor,
        last_outcome=st.last_outcome,
        last_error=st.last_error,
        last_round_at=st.last_round_at,
        next_round_at=st.next_round_at,
    )


@r_state.get("/outcomes", response_model=list[OutcomeResp])
async def state_outcomes(request: Request):
    """Per-recipient results of the last completed round."""
    s: RunScheduler = request.app.state.scheduler
    out = []
    for o in s.status.last_outcomes:
        if isinstance(o, Confirmed):
            out.append(OutcomeResp(address=o.entry.address, label=o.entry.label, status="CONFIRMED",
                                   tx_hash=o.tx_hash, block_number=o.block_number))
        else:
            out.append(OutcomeResp(address=o.entry.address, label=o.entry.label, status="FAILED",
                                   reason=o.reason, attempts=o.attempts))
    return out


def create_app(scheduler: RunScheduler) -> FastAPI:
    app = FastAPI(
        title="autosend",
        description="Recurring native-asset disbursement",
        openapi_tags=[{"name": "State", "description": "Round progress and outcomes"}],
    )
    app.state.scheduler = scheduler

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(r_state)
    return app
