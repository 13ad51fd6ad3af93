import csv
from datetime import datetime

import pytest

from auction_draft.draft.draft_event import AuctionResult, Bid
from auction_draft.draft.event_store import (
    KIND_PHASE,
    KIND_RESET,
    DraftEventStore,
    create_room_filepath,
)
from auction_draft.draft.exceptions import PersistenceError


def make_bid(amount, team_id='team_01'):
    return Bid(team_id=team_id, target_id='member_01', amount=amount, timestamp=datetime(2026, 3, 1, 20, 0))


def make_result(order, target_id='member_01', price=65, auto=False):
    return AuctionResult(
        target_id=target_id,
        winner_team_id='team_01',
        final_price=price,
        order=order,
        is_auto_assignment=auto
    )


@pytest.fixture
def store(tmp_path):
    return DraftEventStore(create_room_filepath(tmp_path, 'abc'))


def test_room_filepath(tmp_path):
    assert create_room_filepath(tmp_path, 'abc') == tmp_path / 'draft_abc.jsonl'


def test_empty_store(store):
    assert store.load_records() == []
    assert store.get_record_count() == 0


def test_records_load_in_write_order(store):
    store.append_bid(make_bid(50))
    store.append_record(KIND_PHASE, {'phase': 'AUCTION'})
    store.append_bid(make_bid(65))
    store.append_result(make_result(1))

    assert [b.amount for b in store.load_bids()] == [50, 65]
    (result,) = store.load_results()
    assert (result.target_id, result.final_price, result.order) == ('member_01', 65, 1)
    assert [r['kind'] for r in store.load_records()] == ['bid', 'phase', 'bid', 'result']
    assert store.get_record_count() == 4


def test_reset_marker_hides_earlier_records(store):
    store.append_bid(make_bid(50))
    store.append_result(make_result(1))
    store.append_record(KIND_RESET, {'actor_id': 'host'})
    store.append_bid(make_bid(10))

    assert [b.amount for b in store.load_bids()] == [10]
    assert store.load_results() == []
    assert store.get_record_count() == 4


def test_malformed_lines_are_skipped(store):
    store.append_bid(make_bid(50))
    with open(store.filepath, 'a', encoding='utf-8') as f:
        f.write('{not json\n')
        f.write('{"data": {}}\n')
    store.append_bid(make_bid(60))

    assert [b.amount for b in store.load_bids()] == [50, 60]


def test_write_failure_raises_persistence_error(tmp_path):
    target = tmp_path / 'draft_dir.jsonl'
    target.mkdir()

    with pytest.raises(PersistenceError):
        DraftEventStore(target).append_bid(make_bid(50))


def test_export_to_csv(store, tmp_path):
    store.append_result(make_result(1))
    store.append_result(make_result(2, target_id='member_02', price=0, auto=True))

    output = tmp_path / 'out' / 'results.csv'
    assert store.export_to_csv(output) == 2

    with open(output, newline='', encoding='utf-8') as f:
        rows = list(csv.DictReader(f))

    assert [r['target_id'] for r in rows] == ['member_01', 'member_02']
    assert rows[1]['is_auto_assignment'] == 'True'
    assert rows[1]['final_price'] == '0'


def test_export_with_no_results(store, tmp_path):
    assert store.export_to_csv(tmp_path / 'empty.csv') == 0
    assert not (tmp_path / 'empty.csv').exists()


def test_clear(store):
    store.append_bid(make_bid(50))
    store.clear()
    assert not store.filepath.exists()
