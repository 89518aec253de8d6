"""
REST API for the draft room.
Thin wrappers around the draft services and persistence.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from draftroom import config
from draftroom.auth import create_access_token, decode_token, hash_password, verify_password
from draftroom.models import Actor, Role, TradeAction, parse_role
from draftroom.persistence import (
    DraftEventRepository,
    PlayerRepository,
    UserRepository,
    get_connection,
    init_db,
)
from draftroom.persistence.db import get_db_path
from draftroom.services.board_service import BoardService
from draftroom.services.draft_service import DraftService
from draftroom.services.errors import (
    AllocationError,
    AuthorizationError,
    ConflictError,
    DraftError,
    NotFoundError,
    ValidationError,
)
from draftroom.services.pick_service import PickService, parse_pick_target
from draftroom.services.sibling_service import SiblingService
from draftroom.services.trade_service import TradeService

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(db_path=get_db_path())
    logger.info("draftroom api ready db=%s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Draft Room API",
    description="Live snake draft: picks, sibling auto-picks and trades",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)


# ---------- Request models ----------


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    name: str | None = Field(None, max_length=200)


class LoginRequest(BaseModel):
    username: str
    password: str


class SetRoleRequest(BaseModel):
    role: str = Field(..., description="ADMIN, COACH or BOARD")


class CreateEventRequest(BaseModel):
    name: str = Field(config.DEFAULT_EVENT_NAME, min_length=1, max_length=200)
    pick_clock_seconds: int = Field(config.DEFAULT_PICK_CLOCK_SECONDS, ge=1)


class StartEventRequest(BaseModel):
    pick_clock_seconds: int | None = Field(None, ge=1, description="Override the event's clock length")


class PauseRequest(BaseModel):
    paused: bool = True


class CreateClaimantRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    order: int | None = Field(None, description="1-based draft position; default appends")
    owner_user_id: str | None = Field(None, description="Coach who picks for this claimant")


class ClaimantOrderRequest(BaseModel):
    claimant_ids: list[str] = Field(..., description="Every claimant, first pick first")


class CreatePlayerRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    is_draft_eligible: bool = True
    guardian_name: str | None = None
    primary_email: str | None = None
    primary_phone: str | None = None
    league_choice: str | None = None


class PickRequest(BaseModel):
    player_id: str
    overall_number: int | None = Field(None, description="Target slot by overall number")
    claimant_id: str | None = Field(None, description="Target slot by claimant (with round)")
    round: int | None = None


class SiblingCostRequest(BaseModel):
    player_id: str
    group_key: str
    draft_cost: int


class ProposeTradeRequest(BaseModel):
    partner_claimant_id: str
    give_ids: list[str]
    receive_ids: list[str]
    message: str | None = None
    from_claimant_id: str | None = Field(None, description="Required for admin/board proposals")


class RespondTradeRequest(BaseModel):
    action: str = Field(..., description="ACCEPT, REJECT, COUNTER or CANCEL")
    give_ids: list[str] | None = None
    receive_ids: list[str] | None = None
    message: str | None = None


class BoardEntryRequest(BaseModel):
    player_id: str
    added_at: datetime | None = None
    slot: int | None = Field(None, description="Pick the coach is aiming this player at")


class SaveBoardRequest(BaseModel):
    entries: list[BoardEntryRequest] = Field(default_factory=list, description="Best first")


# ---------- Auth dependencies ----------


def _get_current_actor(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> Actor | None:
    """Actor from the bearer token, or None if no/invalid token. Role is read fresh from the user row."""
    if credentials is None:
        return None
    claims = decode_token(credentials.credentials)
    if claims is None:
        return None
    with db_conn() as conn:
        user = UserRepository().get(conn, claims["sub"])
    if user is None:
        return None
    return Actor(user_id=user.id, role=user.role)


def _require_actor(actor: Actor | None = Depends(_get_current_actor)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=401, detail="Login required")
    return actor


def _require_admin(actor: Actor = Depends(_require_actor)) -> Actor:
    if actor.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin only")
    return actor


def _http_error(e: DraftError) -> HTTPException:
    """Map a service error onto an HTTP status; the body is the error's payload."""
    if isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, AuthorizationError):
        status = 403
    elif isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, ConflictError):
        status = 409
    elif isinstance(e, AllocationError):
        status = 500
    else:
        status = 400
    return HTTPException(status_code=status, detail=e.to_dict())


# ---------- Accounts ----------


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create a coach account. Passwords hashed, never stored plain."""
    with db_conn() as conn:
        user_repo = UserRepository()
        if user_repo.get_by_username(conn, req.username):
            raise HTTPException(status_code=400, detail="Username already taken")
        user = user_repo.create(conn, req.username, hash_password(req.password), role=Role.COACH, name=req.name)
        token = create_access_token(user.id, user.role)
        return {"user_id": user.id, "username": user.username, "role": user.role.value, "token": token}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    """Returns a JWT carrying the user id and role."""
    with db_conn() as conn:
        user = UserRepository().get_by_username(conn, req.username)
        if user is None or not verify_password(req.password, user.password_hash):
            raise HTTPException(status_code=401, detail="Invalid username or password")
        token = create_access_token(user.id, user.role)
        return {"user_id": user.id, "username": user.username, "role": user.role.value, "token": token}


@app.post("/users/{user_id}/role")
def set_user_role(user_id: str, req: SetRoleRequest, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    role = parse_role(req.role)
    if role is None:
        raise HTTPException(status_code=400, detail=f"Unknown role: {req.role}")
    with db_conn() as conn:
        user_repo = UserRepository()
        if user_repo.get(conn, user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")
        user_repo.update_role(conn, user_id, role)
        logger.info("role changed user=%s role=%s by=%s", user_id, role.value, actor.user_id)
        return {"user_id": user_id, "role": role.value}


# ---------- Draft events ----------


@app.post("/events")
def create_event(req: CreateEventRequest, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            event = DraftService().create_event(conn, req.name, req.pick_clock_seconds)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


@app.get("/events/current")
def get_current_event() -> dict[str, Any]:
    """Draft state of the most recently updated live event, else the most recently updated event."""
    with db_conn() as conn:
        event = DraftEventRepository().get_current(conn)
        if event is None:
            raise HTTPException(status_code=404, detail="No draft event")
        return DraftService().get_state(conn, event.id).to_dict()


@app.get("/events/{event_id}/state")
def get_event_state(
    event_id: str,
    recent: int = Query(default=config.RECENT_PICKS_WINDOW, ge=1, le=200),
) -> dict[str, Any]:
    """Event, claimants in order, who is on the clock, seconds remaining and recent picks."""
    with db_conn() as conn:
        try:
            return DraftService().get_state(conn, event_id, recent_limit=recent).to_dict()
        except DraftError as e:
            raise _http_error(e)


@app.post("/events/{event_id}/start")
def start_event(
    event_id: str,
    req: StartEventRequest | None = None,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            event = DraftService().start(conn, event_id, pick_clock_seconds=req.pick_clock_seconds if req else None)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


@app.post("/events/{event_id}/pause")
def pause_event(
    event_id: str,
    req: PauseRequest | None = None,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    """Pause (default) or resume with {"paused": false}."""
    paused = req.paused if req else True
    with db_conn() as conn:
        try:
            event = DraftService().set_paused(conn, event_id, paused)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


@app.post("/events/{event_id}/stop")
def stop_event(event_id: str, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            event = DraftService().stop(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


@app.post("/events/{event_id}/complete")
def complete_event(event_id: str, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            event = DraftService().complete(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


@app.post("/events/{event_id}/reset")
def reset_event(event_id: str, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    """Clears claimants, players, picks, sibling links, boards and trades for this event."""
    with db_conn() as conn:
        try:
            event = DraftService().reset(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        return event.to_dict()


# ---------- Setup ----------


@app.post("/events/{event_id}/claimants")
def create_claimant(
    event_id: str,
    req: CreateClaimantRequest,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        if req.owner_user_id and UserRepository().get(conn, req.owner_user_id) is None:
            raise HTTPException(status_code=404, detail=f"User not found: {req.owner_user_id}")
        try:
            claimant = DraftService().register_claimant(conn, event_id, req.name, req.order, req.owner_user_id)
        except DraftError as e:
            raise _http_error(e)
        return claimant.to_dict()


@app.post("/events/{event_id}/claimants/order")
def set_claimant_order(
    event_id: str,
    req: ClaimantOrderRequest,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            claimants = DraftService().set_claimant_order(conn, event_id, req.claimant_ids)
        except DraftError as e:
            raise _http_error(e)
        return {"claimants": [c.to_dict() for c in claimants]}


@app.post("/events/{event_id}/players")
def create_player(
    event_id: str,
    req: CreatePlayerRequest,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            player = DraftService().register_player(
                conn, event_id, req.full_name,
                is_draft_eligible=req.is_draft_eligible,
                guardian_name=req.guardian_name,
                primary_email=req.primary_email,
                primary_phone=req.primary_phone,
                league_choice=req.league_choice,
            )
        except DraftError as e:
            raise _http_error(e)
        return player.to_dict()


@app.get("/events/{event_id}/players")
def list_players(event_id: str, available: bool = False) -> dict[str, Any]:
    """Player pool; available=true limits to eligible, undrafted players."""
    with db_conn() as conn:
        try:
            DraftService().get_event(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        players = PlayerRepository().list_by_event(conn, event_id, available_only=available)
        return {"players": [p.to_dict() for p in players]}


# ---------- Picks ----------


@app.post("/events/{event_id}/picks")
def make_pick(event_id: str, req: PickRequest, actor: Actor = Depends(_require_actor)) -> dict[str, Any]:
    """
    Commit a pick. Name the slot by overall_number, or by claimant_id + round.
    Returns the pick and any sibling auto-pick placed with it.
    """
    with db_conn() as conn:
        try:
            target = parse_pick_target(req.overall_number, req.claimant_id, req.round)
            result = PickService().commit_pick(conn, event_id, req.player_id, target, actor)
        except DraftError as e:
            raise _http_error(e)
        return result.to_dict()


@app.get("/events/{event_id}/picks")
def list_picks(event_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            picks = PickService().list_picks(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        return {"picks": [p.to_dict() for p in picks]}


# ---------- Siblings ----------


@app.post("/events/{event_id}/sibling-costs")
def set_sibling_cost(
    event_id: str,
    req: SiblingCostRequest,
    actor: Actor = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            link = SiblingService().set_draft_cost(conn, event_id, req.player_id, req.group_key, req.draft_cost)
        except DraftError as e:
            raise _http_error(e)
        return {"ok": True, "link": link.to_dict()}


@app.get("/events/{event_id}/sibling-groups")
def list_sibling_groups(event_id: str, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    """Suggested sibling groups (shared registrant within a league) with configured costs."""
    with db_conn() as conn:
        try:
            DraftService().get_event(conn, event_id)
        except DraftError as e:
            raise _http_error(e)
        groups = SiblingService().suggest_groups(conn, event_id)
        return {"groups": [g.to_dict() for g in groups]}


# ---------- Trades ----------


@app.post("/events/{event_id}/trades")
def propose_trade(
    event_id: str,
    req: ProposeTradeRequest,
    actor: Actor = Depends(_require_actor),
) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            trade = TradeService().propose(
                conn, event_id, actor,
                partner_claimant_id=req.partner_claimant_id,
                give_ids=req.give_ids,
                receive_ids=req.receive_ids,
                message=req.message,
                from_claimant_id=req.from_claimant_id,
            )
        except DraftError as e:
            raise _http_error(e)
        return {
            "trade_id": trade.id,
            "from_avg_round": trade.from_avg_round,
            "to_avg_round": trade.to_avg_round,
            "round_delta": trade.round_delta,
        }


@app.get("/events/{event_id}/trades")
def list_trades(
    event_id: str,
    limit: int = Query(default=config.TRADE_INBOX_LIMIT, ge=1, le=200),
    actor: Actor = Depends(_require_actor),
) -> dict[str, Any]:
    """Coaches see trades involving their own claimant; admin and board see all."""
    with db_conn() as conn:
        try:
            trades = TradeService().list_trades(conn, event_id, actor, limit=limit)
        except DraftError as e:
            raise _http_error(e)
        return {"trades": [t.to_dict() for t in trades]}


@app.post("/trades/{trade_id}/respond")
def respond_trade(
    trade_id: str,
    req: RespondTradeRequest,
    actor: Actor = Depends(_require_actor),
) -> dict[str, Any]:
    try:
        action = TradeAction(req.action.strip().upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown action: {req.action}")
    with db_conn() as conn:
        try:
            result = TradeService().respond(
                conn, trade_id, actor, action,
                give_ids=req.give_ids,
                receive_ids=req.receive_ids,
                message=req.message,
            )
        except DraftError as e:
            raise _http_error(e)
        return result.to_dict()


@app.get("/events/{event_id}/claimants/{claimant_id}/roster")
def get_roster(event_id: str, claimant_id: str, actor: Actor = Depends(_require_actor)) -> dict[str, Any]:
    """Current roster with each player's draft round, for building trade offers."""
    with db_conn() as conn:
        try:
            roster = TradeService().roster_with_rounds(conn, event_id, claimant_id)
        except DraftError as e:
            raise _http_error(e)
        return {"claimant_id": claimant_id, "players": roster}


# ---------- Boards and rosters ----------


@app.get("/events/{event_id}/claimants/me")
def get_my_claimant(event_id: str, actor: Actor = Depends(_require_actor)) -> dict[str, Any]:
    """The caller's own claimant and roster; {"claimant": null, "players": []} when they coach none."""
    with db_conn() as conn:
        try:
            mine = BoardService().my_claimant(conn, event_id, actor)
        except DraftError as e:
            raise _http_error(e)
        return mine.to_dict()


@app.get("/events/{event_id}/claimants/{claimant_id}/board")
def get_board(event_id: str, claimant_id: str, actor: Actor = Depends(_require_actor)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            board = BoardService().get_board(conn, event_id, claimant_id, actor)
        except DraftError as e:
            raise _http_error(e)
        return board.to_dict()


@app.put("/events/{event_id}/claimants/{claimant_id}/board")
def save_board(
    event_id: str,
    claimant_id: str,
    req: SaveBoardRequest,
    actor: Actor = Depends(_require_actor),
) -> dict[str, Any]:
    """Replace the board. Unknown players are dropped; the stored board is returned."""
    with db_conn() as conn:
        try:
            board = BoardService().save_board(
                conn, event_id, claimant_id, actor, [e.model_dump() for e in req.entries],
            )
        except DraftError as e:
            raise _http_error(e)
        return {"ok": True, **board.to_dict()}


@app.get("/events/{event_id}/rosters")
def get_full_rosters(event_id: str, actor: Actor = Depends(_require_admin)) -> dict[str, Any]:
    """Every claimant in draft order with its drafted players."""
    with db_conn() as conn:
        try:
            rosters = BoardService().full_rosters(conn, event_id, actor)
        except DraftError as e:
            raise _http_error(e)
        return {"draft_event_id": event_id, "claimants": [r.to_dict() for r in rosters]}
