import pytest

from auction_draft.draft.auction_controller import (
    REASON_ROSTER_FULL,
    REASON_STALE_PRICE,
    REASON_TIMER_NOT_RUNNING,
    AuctionRoundController,
)
from auction_draft.draft.exceptions import BidRejectedError, InternalStateError, ValidationError
from auction_draft.bid_pricing import REASON_BELOW_MINIMUM, REASON_INSUFFICIENT_POINTS
from conftest import make_room


def expire(controller):
    while controller.tick() > 0:
        pass


@pytest.fixture
def controller():
    room = make_room(captain_values=[200, 0])
    controller = AuctionRoundController(room)
    controller.load_queue(['member_01', 'member_02', 'member_03', 'member_04'])
    controller.start_next()
    return controller


def test_captain_value_reduces_starting_points(controller):
    assert controller.room.teams['team_01'].current_points == 800
    assert controller.room.teams['team_02'].current_points == 1000


def test_start_item_opens_block(controller):
    state = controller.state
    assert state.current_item_id == 'member_01'
    assert state.current_price == 0
    assert state.timer == 300
    assert state.timer_running
    assert controller.room.current_item_id == 'member_01'


def test_start_item_while_active(controller):
    with pytest.raises(ValidationError):
        controller.start_item('member_02')


def test_accepted_bid_updates_state(controller):
    bid = controller.place_bid('team_01', 50)

    assert bid.amount == 50
    assert controller.state.current_price == 50
    assert controller.state.leading_team_id == 'team_01'
    assert controller.state.bid_history == [bid]
    assert controller.room.bids == [bid]


def test_sale_settles_points_and_roster(controller):
    controller.place_bid('team_01', 50)
    controller.place_bid('team_01', 65)
    expire(controller)

    resolution = controller.resolve()

    assert resolution.sold
    assert resolution.result.final_price == 65
    assert resolution.result.winner_team_id == 'team_01'
    assert not resolution.result.is_auto_assignment
    assert controller.room.teams['team_01'].current_points == 735
    assert controller.room.participants['member_01'].team_id == 'team_01'
    assert not controller.active
    controller.room.validate()


def test_rejected_bid_leaves_state_untouched(controller):
    controller.place_bid('team_02', 50)
    before = controller.state.to_dict()

    with pytest.raises(BidRejectedError) as exc_info:
        controller.place_bid('team_01', 54)

    assert exc_info.value.reason == REASON_BELOW_MINIMUM
    assert controller.state.to_dict() == before
    assert len(controller.room.bids) == 1


def test_equal_bid_rejected(controller):
    controller.place_bid('team_02', 50)
    with pytest.raises(BidRejectedError):
        controller.place_bid('team_01', 50)


def test_bid_above_balance_rejected(controller):
    with pytest.raises(BidRejectedError) as exc_info:
        controller.place_bid('team_01', 801)
    assert exc_info.value.reason == REASON_INSUFFICIENT_POINTS


def test_bid_of_whole_balance_accepted(controller):
    controller.place_bid('team_01', 800)
    assert controller.state.current_price == 800


def test_stale_observed_price_rejected(controller):
    controller.place_bid('team_02', 50)
    with pytest.raises(BidRejectedError) as exc_info:
        controller.place_bid('team_01', 60, observed_price=0)
    assert exc_info.value.reason == REASON_STALE_PRICE

    controller.place_bid('team_01', 60, observed_price=50)
    assert controller.state.current_price == 60


@pytest.mark.parametrize('remaining, expected', [
    (300, 320),
    (51, 71),
    (50, 50),
    (30, 50),
    (1, 50),
])
def test_timer_extension(controller, remaining, expected):
    controller.state.timer = remaining
    controller.place_bid('team_02', 50)
    assert controller.state.timer == expected


def test_timer_extension_has_no_cap(controller):
    for amount in (5, 10, 15, 20, 25):
        controller.place_bid('team_02', amount)
    assert controller.state.timer == 300 + 5 * 20


def test_tick_stops_at_zero_without_resolving(controller):
    assert controller.tick() == 299
    expire(controller)

    assert controller.state.timer == 0
    assert not controller.state.timer_running
    assert controller.active
    assert controller.tick() == 0


def test_bid_after_expiry_rejected(controller):
    expire(controller)
    with pytest.raises(BidRejectedError) as exc_info:
        controller.place_bid('team_01', 50)
    assert exc_info.value.reason == REASON_TIMER_NOT_RUNNING


def test_resolve_before_expiry(controller):
    with pytest.raises(ValidationError):
        controller.resolve()


def test_resolve_without_active_item():
    controller = AuctionRoundController(make_room())
    with pytest.raises(InternalStateError):
        controller.resolve()


def test_no_bids_goes_to_unsold_once(controller):
    expire(controller)
    resolution = controller.resolve()

    assert not resolution.sold
    assert resolution.result is None
    assert controller.state.unsold_queue == ['member_01']
    assert controller.room.results == []
    assert controller.room.participants['member_01'].team_id is None


def test_pass_item(controller):
    resolution = controller.pass_item()
    assert not resolution.sold
    assert controller.state.unsold_queue == ['member_01']


def test_pass_item_with_leading_bid(controller):
    controller.place_bid('team_01', 50)
    with pytest.raises(ValidationError):
        controller.pass_item()
    assert controller.state.timer_running


def test_full_roster_cannot_bid():
    room = make_room(member_per_team=1, member_count=3)
    controller = AuctionRoundController(room)
    controller.load_queue(['member_01', 'member_02', 'member_03'])

    controller.start_next()
    controller.place_bid('team_01', 10)
    expire(controller)
    controller.resolve()

    controller.start_next()
    with pytest.raises(BidRejectedError) as exc_info:
        controller.place_bid('team_01', 10)
    assert exc_info.value.reason == REASON_ROSTER_FULL


def test_auto_assignment_is_free(controller):
    expire(controller)
    controller.resolve()

    result = controller.settle_auto_assignment('member_01', 'team_02')

    assert result.final_price == 0
    assert result.is_auto_assignment
    assert controller.state.unsold_queue == []
    assert controller.room.teams['team_02'].current_points == 1000
    controller.room.validate()


def test_auto_assignment_requires_unsold(controller):
    with pytest.raises(ValidationError):
        controller.settle_auto_assignment('member_02', 'team_02')


def test_drain_state(controller):
    assert not controller.is_drained()
    for _ in range(4):
        expire(controller)
        controller.resolve()
        controller.start_next()
    assert not controller.active
    assert controller.state.unsold_queue == ['member_01', 'member_02', 'member_03', 'member_04']
    assert not controller.is_drained()
