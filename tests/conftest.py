import pytest

from auction_draft.draft.draft_event import create_initial_room
from auction_draft.draft.room_engine import RoomEngine


def make_room(team_count=2, member_per_team=2, total_points=1000, captain_values=None, member_count=None):
    captain_values = captain_values or [0] * team_count
    member_count = team_count * member_per_team if member_count is None else member_count
    return create_initial_room(
        title='Test room',
        team_count=team_count,
        member_per_team=member_per_team,
        total_points=total_points,
        captains=[{'nickname': f'Cap {i}', 'captain_value': v} for i, v in enumerate(captain_values, 1)],
        members=[{'nickname': f'Player {i}', 'position': 'MF'} for i in range(1, member_count + 1)],
        room_id='room_test'
    )


def bring_captains_online(engine):
    for captain in engine.room.captains():
        engine.presence.join(captain.participant_id)


def run_to_auction(engine, seed=11):
    """Drive an engine from WAITING into AUCTION with the first member on the block."""
    bring_captains_online(engine)
    engine.advance_phase('host')
    while engine.room.phase.value == 'CAPTAIN_INTRO':
        engine.next_captain('host')
    engine.start_shuffle('host', seed=seed)
    while not engine.shuffle.is_complete:
        engine.reveal_next('host')
    engine.advance_phase('host')


def run_clock(engine):
    """Tick until the timer on the current member runs out."""
    while engine.tick():
        pass


def expire(engine):
    """Run the clock out, then have the host settle the member."""
    run_clock(engine)
    engine.resolve('host')


@pytest.fixture
def room():
    return make_room()


@pytest.fixture
def engine_with_events():
    engine = RoomEngine(make_room(captain_values=[200, 0]))
    events = []
    engine.channel.subscribe(events.append)
    return engine, events
