import pytest

from auction_draft import main as cli
from auction_draft.draft.event_store import DraftEventStore, create_room_filepath
from auction_draft.draft.draft_event import AuctionResult


def test_modes_are_exclusive():
    with pytest.raises(SystemExit):
        cli.parse_arguments(['--serve', '--simulate'])
    with pytest.raises(SystemExit):
        cli.parse_arguments([])


def test_simulation_runs_to_completion(caplog):
    caplog.set_level('INFO')
    cli.main(['--simulate', '--seed', '3'])
    assert 'SIMULATION COMPLETE (seed=3)' in caplog.text


def test_export_results(tmp_path, monkeypatch):
    monkeypatch.setattr(cli.config, 'DRAFT_EVENTS_DIR', str(tmp_path / 'events'))
    monkeypatch.setattr(cli.config, 'DRAFT_CHECKPOINTS_DIR', str(tmp_path / 'checkpoints'))

    store = DraftEventStore(create_room_filepath(tmp_path / 'events', 'r1'))
    store.append_result(AuctionResult(target_id='member_01', winner_team_id='team_01', final_price=30, order=1))

    output = tmp_path / 'results.csv'
    cli.main(['--export-results', 'r1', '--output', str(output)])

    assert output.read_text(encoding='utf-8').splitlines()[1].startswith('1,member_01,team_01,30')


def test_export_unknown_room(tmp_path, monkeypatch):
    monkeypatch.setattr(cli.config, 'DRAFT_EVENTS_DIR', str(tmp_path / 'events'))
    with pytest.raises(SystemExit):
        cli.main(['--export-results', 'nope'])
