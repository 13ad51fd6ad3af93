"""
FastAPI server for draft rooms.

HTTP endpoints create rooms and carry host/captain actions; the WebSocket
endpoint streams each room's events and is the only writer of presence.
A background task ticks the auction timer of every room.
"""

import asyncio
import json
import logging
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .. import config
from ..bid_pricing import format_time
from .api_serializers import (
    ActorRequest,
    BidRequest,
    BidResponse,
    CreateFromTemplateRequest,
    CreateRoomRequest,
    PhaseOutcomeResponse,
    ResolutionResponse,
    RoomCreatedResponse,
    RoomListResponse,
    StartShuffleRequest,
    serialize_bid,
    serialize_error,
    serialize_phase_outcome,
    serialize_resolution,
    serialize_room_created,
    serialize_room_list,
)
from .draft_event import Phase
from .exceptions import (
    AuthorizationError,
    BidRejectedError,
    DraftError,
    InternalStateError,
    InvalidPhaseError,
    PersistenceError,
    RoomNotFoundError,
    ValidationError,
)
from .room_engine import RoomEngine
from .room_state_manager import get_team_summary, results_dataframe
from .session_manager import RoomRegistry
from .templates import list_templates

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Auction Draft Room API",
    description="Captain auction drafts: rooms, phases, bidding and live events",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global room registry
registry = RoomRegistry()

_ticker_task: Optional[asyncio.Task] = None


# ===== Error mapping =====

def _to_http(error: DraftError, action: str) -> HTTPException:
    """Map a draft error to the HTTP status the caller should see."""
    if isinstance(error, RoomNotFoundError):
        status = 404
    elif isinstance(error, AuthorizationError):
        status = 403
    elif isinstance(error, (InvalidPhaseError, BidRejectedError)):
        status = 409
    elif isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, PersistenceError):
        status = 503
    else:
        status = 500

    if status >= 500:
        logger.error(f"Failed to {action}: {error}", exc_info=True)
    else:
        logger.warning(f"Cannot {action}: {error}")

    return HTTPException(status_code=status, detail=serialize_error(error))


def _get_engine(room_id: str) -> RoomEngine:
    try:
        return registry.get(room_id)
    except RoomNotFoundError as e:
        raise _to_http(e, f"find room {room_id}")


def _records(df) -> list:
    # Round-trip through JSON so numpy scalars become plain ints/floats
    return json.loads(df.to_json(orient='records'))


# ===== Service endpoints =====

@app.get("/health")
def health_check():
    """Simple health check endpoint."""
    return {
        "status": "ok",
        "service": "Auction Draft Room API",
        "version": "1.0.0",
        "rooms": len(registry.list_rooms())
    }


@app.get("/config")
def get_default_config():
    """Defaults used when a room is created without explicit settings."""
    return {
        'total_points': config.DEFAULT_TOTAL_POINTS,
        'team_count': config.DEFAULT_TEAM_COUNT,
        'member_per_team': config.DEFAULT_MEMBER_PER_TEAM,
        'team_count_range': [config.MIN_TEAM_COUNT, config.MAX_TEAM_COUNT],
        'initial_timer': config.INITIAL_TIMER,
        'initial_timer_display': format_time(config.INITIAL_TIMER),
        'bid_time_extension': config.BID_TIME_EXTENSION,
        'min_timer_threshold': config.MIN_TIMER_THRESHOLD,
        'timer_interval_ms': config.TIMER_INTERVAL_MS,
        'bid_unit_rules': [list(rule) for rule in config.BID_UNIT_RULES],
        'team_colors': config.TEAM_COLORS
    }


@app.get("/templates")
def get_templates():
    """Metadata of every available room template."""
    templates = list_templates()
    return {
        'templates': [
            {**template['metadata'], 'teams': [t['name'] for t in template['teams']]}
            for template in templates.values()
        ]
    }


# ===== Room lifecycle =====

@app.post("/rooms", response_model=RoomCreatedResponse, status_code=201)
def create_room(request: CreateRoomRequest):
    """
    Create a room in WAITING with a host, one captain per team and the
    member pool.

    Raises:
        400 Bad Request: If the captains or points don't fit the room
    """
    try:
        engine = registry.create_room(
            title=request.title,
            team_count=request.team_count,
            member_per_team=request.member_per_team,
            total_points=request.total_points,
            captains=[c.model_dump(exclude_none=True) for c in request.captains],
            members=[m.model_dump(exclude_none=True) for m in request.members]
        )
        return serialize_room_created(engine)

    except ValueError as e:
        logger.warning(f"Cannot create room: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        logger.error(f"Failed to create room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create room: {e}")


@app.post("/rooms/from-template", response_model=RoomCreatedResponse, status_code=201)
def create_room_from_template(request: CreateFromTemplateRequest):
    """
    Create a room from a template.

    Raises:
        404 Not Found: Unknown template id
        400 Bad Request: Team selection outside the template's limits
    """
    try:
        template = list_templates().get(request.template_id)
        if template is None:
            raise HTTPException(status_code=404, detail=f"Template {request.template_id} not found")

        engine = registry.create_from_template(
            template,
            title=request.title,
            team_names=request.team_names,
            total_points=request.total_points
        )
        return serialize_room_created(engine)

    except HTTPException:
        raise

    except ValueError as e:
        logger.warning(f"Cannot create room from template: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        logger.error(f"Failed to create room from template: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create room from template: {e}")


@app.get("/rooms", response_model=RoomListResponse)
def list_rooms():
    return serialize_room_list(registry.list_rooms())


@app.get("/rooms/{room_id}")
def get_room(room_id: str):
    """Full room snapshot with presence merged in."""
    return _get_engine(room_id).snapshot()


@app.delete("/rooms/{room_id}")
def delete_room(room_id: str):
    try:
        registry.remove(room_id)
        return {'room_id': room_id, 'removed': True}
    except RoomNotFoundError as e:
        raise _to_http(e, f"remove room {room_id}")


@app.post("/rooms/{room_id}/resume", response_model=RoomCreatedResponse)
def resume_room(room_id: str):
    """
    Reload a room from its last checkpoint.

    Raises:
        404 Not Found: If no checkpoint exists
    """
    try:
        engine = registry.resume(room_id)
        return serialize_room_created(engine)

    except DraftError as e:
        raise _to_http(e, f"resume room {room_id}")

    except Exception as e:
        logger.error(f"Failed to resume room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to resume room: {e}")


# ===== Room views =====

@app.get("/rooms/{room_id}/summary")
def get_room_summary(room_id: str):
    """Rosters and sold prices per team (no ranking)."""
    return _get_engine(room_id).room_summary()


@app.get("/rooms/{room_id}/teams")
def get_team_table(room_id: str):
    engine = _get_engine(room_id)
    try:
        return {'room_id': room_id, 'teams': _records(get_team_summary(engine.room))}
    except Exception as e:
        logger.error(f"Failed to build team summary for {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build team summary: {e}")


@app.get("/rooms/{room_id}/results")
def get_results_table(room_id: str):
    engine = _get_engine(room_id)
    try:
        return {'room_id': room_id, 'results': _records(results_dataframe(engine.room))}
    except Exception as e:
        logger.error(f"Failed to build results for {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build results: {e}")


# ===== Host and captain actions =====

@app.post("/rooms/{room_id}/advance", response_model=PhaseOutcomeResponse)
def advance_phase(room_id: str, request: ActorRequest):
    """
    Move the room to its next phase.

    An unmet precondition is not an error: the response has advanced=false
    and a reason code.

    Raises:
        403 Forbidden: Caller is not the host
        409 Conflict: Room already finished
    """
    engine = _get_engine(room_id)
    try:
        outcome = engine.advance_phase(request.actor_id)
        return serialize_phase_outcome(outcome, engine)

    except DraftError as e:
        raise _to_http(e, f"advance room {room_id}")

    except Exception as e:
        logger.error(f"Failed to advance room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to advance phase: {e}")


@app.post("/rooms/{room_id}/captains/next", response_model=PhaseOutcomeResponse)
def next_captain(room_id: str, request: ActorRequest):
    engine = _get_engine(room_id)
    try:
        outcome = engine.next_captain(request.actor_id)
        return serialize_phase_outcome(outcome, engine)

    except DraftError as e:
        raise _to_http(e, f"advance captain intro in {room_id}")

    except Exception as e:
        logger.error(f"Failed to advance captain intro in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to advance captain intro: {e}")


@app.post("/rooms/{room_id}/shuffle/start")
def start_shuffle(room_id: str, request: StartShuffleRequest):
    engine = _get_engine(room_id)
    try:
        engine.start_shuffle(request.actor_id, seed=request.seed)
        return {'sequence': engine.sequence, 'shuffle': engine.snapshot()['shuffle']}

    except DraftError as e:
        raise _to_http(e, f"start shuffle in {room_id}")

    except Exception as e:
        logger.error(f"Failed to start shuffle in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start shuffle: {e}")


@app.post("/rooms/{room_id}/shuffle/reveal")
def reveal_next(room_id: str, request: ActorRequest):
    engine = _get_engine(room_id)
    try:
        member_id = engine.reveal_next(request.actor_id)
        return {
            'member_id': member_id,
            'sequence': engine.sequence,
            'shuffle': engine.snapshot()['shuffle']
        }

    except DraftError as e:
        raise _to_http(e, f"reveal in {room_id}")

    except Exception as e:
        logger.error(f"Failed to reveal in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to reveal: {e}")


@app.post("/rooms/{room_id}/bids", response_model=BidResponse)
def place_bid(room_id: str, request: BidRequest):
    """
    Bid on the member currently on the block.

    Raises:
        403 Forbidden: Caller is not a captain
        409 Conflict: Bid rejected (reason code in the body) or wrong phase
    """
    engine = _get_engine(room_id)
    try:
        bid = engine.place_bid(request.actor_id, request.amount, observed_price=request.observed_price)
        return serialize_bid(bid, engine)

    except DraftError as e:
        raise _to_http(e, f"bid in {room_id}")

    except Exception as e:
        logger.error(f"Failed to place bid in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to place bid: {e}")


@app.post("/rooms/{room_id}/resolve", response_model=ResolutionResponse)
def resolve_item(room_id: str, request: ActorRequest):
    """
    Settle the member on the block after its timer ran out (host only).

    Raises:
        400 Bad Request: Timer still running
        409 Conflict: No member on the block or wrong phase
    """
    engine = _get_engine(room_id)
    try:
        resolution = engine.resolve(request.actor_id)
        return serialize_resolution(resolution, engine)

    except InternalStateError as e:
        logger.warning(f"Cannot resolve in {room_id}: {e}")
        raise HTTPException(status_code=409, detail=serialize_error(e))

    except DraftError as e:
        raise _to_http(e, f"resolve in {room_id}")

    except Exception as e:
        logger.error(f"Failed to resolve in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to resolve: {e}")


@app.post("/rooms/{room_id}/pass", response_model=ResolutionResponse)
def pass_item(room_id: str, request: ActorRequest):
    engine = _get_engine(room_id)
    try:
        resolution = engine.pass_item(request.actor_id)
        return serialize_resolution(resolution, engine)

    except InternalStateError as e:
        # No member on the block is a caller mistake here
        logger.warning(f"Cannot pass in {room_id}: {e}")
        raise HTTPException(status_code=409, detail=serialize_error(e))

    except DraftError as e:
        raise _to_http(e, f"pass in {room_id}")

    except Exception as e:
        logger.error(f"Failed to pass in {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to pass: {e}")


@app.post("/rooms/{room_id}/reset")
def reset_room(room_id: str, request: ActorRequest):
    """Host-only full reset back to WAITING."""
    engine = _get_engine(room_id)
    try:
        engine.reset(request.actor_id)
        return {'room_id': room_id, 'phase': engine.room.phase.value, 'sequence': engine.sequence}

    except DraftError as e:
        raise _to_http(e, f"reset room {room_id}")

    except Exception as e:
        logger.error(f"Failed to reset room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to reset room: {e}")


# ===== Realtime =====

def _dispatch(engine: RoomEngine, participant_id: str, message: Dict) -> Dict:
    """Run one WebSocket action and build the direct reply."""
    action = message.get('action')

    if action == 'snapshot':
        return {'type': 'SNAPSHOT', 'payload': engine.snapshot()}
    if action == 'advance':
        outcome = engine.advance_phase(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': outcome.to_dict()}
    if action == 'next_captain':
        outcome = engine.next_captain(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': outcome.to_dict()}
    if action == 'start_shuffle':
        order = engine.start_shuffle(participant_id, seed=message.get('seed'))
        return {'type': 'ACK', 'action': action, 'payload': {'total': len(order)}}
    if action == 'reveal':
        member_id = engine.reveal_next(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': {'member_id': member_id}}
    if action == 'bid':
        bid = engine.place_bid(
            participant_id,
            int(message['amount']),
            observed_price=message.get('observed_price')
        )
        return {'type': 'ACK', 'action': action, 'payload': bid.to_dict()}
    if action == 'resolve':
        resolution = engine.resolve(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': {'item_id': resolution.item_id, 'sold': resolution.sold}}
    if action == 'pass':
        resolution = engine.pass_item(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': {'item_id': resolution.item_id}}
    if action == 'reset':
        engine.reset(participant_id)
        return {'type': 'ACK', 'action': action, 'payload': {}}

    raise ValidationError(f"Unknown action {action!r}", 'unknown_action')


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _stop_sender(sender: asyncio.Task, label: str) -> None:
    """Cancel a pump task and collect its outcome, including a failed send."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning(f"{label} send failed: {e}")


@app.websocket("/ws/rooms/{room_id}/{participant_id}")
async def room_socket(websocket: WebSocket, room_id: str, participant_id: str):
    """
    Stream a room's events to one participant.

    The connection marks the participant online for as long as it stays
    open. Errors from actions sent over the socket go back to this socket
    only.
    """
    try:
        engine = registry.get(room_id)
    except RoomNotFoundError:
        await websocket.close(code=4404)
        return

    if participant_id not in engine.room.participants:
        await websocket.close(code=4403)
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, {'type': 'EVENT', 'event': event.to_dict()})

    unsubscribe = engine.channel.subscribe(forward)
    engine.presence.join(participant_id)
    last_event = engine.channel.last_event
    await websocket.send_json({
        'type': 'SNAPSHOT',
        'payload': engine.snapshot(),
        'last_event': last_event.to_dict() if last_event else None
    })
    sender = asyncio.create_task(_pump(websocket, queue))

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                queue.put_nowait({'type': 'ERROR', 'action': None, 'error': {
                    'error': 'ValidationError', 'reason': 'invalid', 'detail': 'Expected a JSON object'
                }})
                continue
            try:
                reply = await asyncio.to_thread(_dispatch, engine, participant_id, message)
            except (DraftError, KeyError, TypeError, ValueError) as e:
                if isinstance(e, (PersistenceError, InternalStateError)):
                    logger.error(f"[{room_id}] {participant_id} {message.get('action')}: {e}", exc_info=True)
                else:
                    logger.warning(f"[{room_id}] {participant_id} {message.get('action')} rejected: {e}")
                reply = {'type': 'ERROR', 'action': message.get('action'), 'error': serialize_error(e)}
            queue.put_nowait(reply)

    except WebSocketDisconnect:
        logger.info(f"[{room_id}] {participant_id} socket closed")

    finally:
        unsubscribe()
        engine.presence.leave(participant_id)
        await _stop_sender(sender, f"[{room_id}] {participant_id}")


async def _tick_rooms() -> None:
    """Tick the auction timer of every room in AUCTION."""
    interval = config.TIMER_INTERVAL_MS / 1000
    while True:
        await asyncio.sleep(interval)
        for engine in registry.list_rooms():
            if engine.room.phase != Phase.AUCTION:
                continue
            try:
                await asyncio.to_thread(engine.tick)
            except Exception as e:
                logger.error(f"Timer tick failed for room {engine.room_id}: {e}", exc_info=True)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Start the timer task."""
    global _ticker_task
    _ticker_task = asyncio.create_task(_tick_rooms())
    logger.info("Auction Draft Room API server started")
    logger.info(f"Event logs: {registry.events_dir}")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Stop the timer task and checkpoint every room."""
    logger.info("Auction Draft Room API server shutting down")

    if _ticker_task is not None:
        _ticker_task.cancel()

    for engine in registry.list_rooms():
        try:
            engine.save_checkpoint()
        except PersistenceError as e:
            logger.error(f"Error saving room {engine.room_id} during shutdown: {e}")
