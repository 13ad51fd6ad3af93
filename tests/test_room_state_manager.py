import pytest

from auction_draft.draft.auction_controller import AuctionRoundController
from auction_draft.draft.exceptions import PersistenceError
from auction_draft.draft.room_state_manager import (
    RoomStateManager,
    get_team_summary,
    results_dataframe,
    sold_prices,
)
from auction_draft.draft.shuffle_controller import ShuffleController
from conftest import make_room


def sell(controller, team_id, amount):
    controller.start_next()
    controller.place_bid(team_id, amount)
    while controller.tick() > 0:
        pass
    return controller.resolve()


@pytest.fixture
def played_room():
    room = make_room(captain_values=[200, 0])
    controller = AuctionRoundController(room)
    controller.load_queue(['member_01', 'member_02', 'member_03'])
    sell(controller, 'team_01', 65)
    sell(controller, 'team_02', 120)
    controller.start_next()
    while controller.tick() > 0:
        pass
    controller.resolve()
    controller.settle_auto_assignment('member_03', 'team_02')
    return room, controller


def test_checkpoint_round_trip(tmp_path, played_room):
    room, controller = played_room
    shuffle = ShuffleController()
    shuffle.start(['member_01', 'member_02'], seed=4)
    manager = RoomStateManager(tmp_path)

    path = manager.save_checkpoint(room, controller.state, shuffle, captain_index=1, resolver_seed=33)
    assert path.exists()
    assert not path.with_suffix('.tmp').exists()

    loaded = manager.load_checkpoint(room.room_id)
    assert loaded['room'].to_dict() == room.to_dict()
    assert loaded['auction_state'].to_dict() == controller.state.to_dict()
    assert loaded['shuffle'].order == shuffle.order
    assert loaded['captain_index'] == 1
    assert loaded['resolver_seed'] == 33


def test_missing_checkpoint(tmp_path):
    manager = RoomStateManager(tmp_path)
    assert not manager.has_checkpoint('nope')
    with pytest.raises(FileNotFoundError):
        manager.load_checkpoint('nope')


def test_checkpoint_write_failure(tmp_path, played_room):
    room, _ = played_room
    manager = RoomStateManager(tmp_path)
    manager.checkpoint_path(room.room_id).with_suffix('.tmp').mkdir()

    with pytest.raises(PersistenceError):
        manager.save_checkpoint(room)


def test_team_summary(played_room):
    room, _ = played_room
    df = get_team_summary(room)

    assert list(df['team_id']) == ['team_01', 'team_02']
    team_01 = df[df['team_id'] == 'team_01'].iloc[0]
    team_02 = df[df['team_id'] == 'team_02'].iloc[0]
    assert team_01['spent'] == 65
    assert team_01['current_points'] == 735
    assert team_02['members'] == 2
    assert team_02['open_slots'] == 0


def test_results_dataframe(played_room):
    room, _ = played_room
    df = results_dataframe(room)

    assert list(df['target_id']) == ['member_01', 'member_02', 'member_03']
    assert list(df['order']) == [1, 2, 3]
    assert list(df['is_auto_assignment']) == [False, False, True]
    assert df.iloc[0]['team_name'] == 'Team 1'


def test_results_dataframe_empty():
    df = results_dataframe(make_room())
    assert df.empty
    assert 'final_price' in df.columns


def test_sold_prices_skip_auto_assignments(played_room):
    room, _ = played_room
    assert sold_prices(room) == {'member_01': 65, 'member_02': 120}
