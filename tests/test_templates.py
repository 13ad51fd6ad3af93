import json

import pytest

from auction_draft.draft.draft_event import Phase, Role
from auction_draft.draft.templates import (
    DEMO_TEMPLATE,
    list_templates,
    load_template,
    room_from_template,
)


def test_demo_template_room():
    room = room_from_template(DEMO_TEMPLATE)

    assert room.phase == Phase.WAITING
    assert room.title == 'Demo League'
    assert room.team_count == 4
    assert room.member_per_team == 4
    assert room.total_points == 1000
    assert len(room.members()) == 16
    assert [t.name for t in room.teams.values()] == [
        'Harbour FC', 'Northgate United', 'Riverside Athletic', 'Old Town Rovers'
    ]
    assert [c.nickname for c in room.captains()] == ['Morgan', 'Rowan', 'Sasha', 'Taylor']
    assert all(m.team_id is None for m in room.members())
    assert len(room.participants_with_role(Role.HOST)) == 1


def test_team_selection_pools_only_selected_members():
    room = room_from_template(
        DEMO_TEMPLATE,
        title='Two clubs',
        team_names=['Old Town Rovers', 'Harbour FC'],
        total_points=500
    )

    assert [t.name for t in room.teams.values()] == ['Harbour FC', 'Old Town Rovers']
    assert {m.nickname for m in room.members()} == {
        'Alder', 'Birch', 'Cedar', 'Dune', 'Maple', 'Nettle', 'Oak', 'Pine'
    }
    assert all(t.current_points == 500 for t in room.teams.values())


def test_team_count_limits():
    with pytest.raises(ValueError):
        room_from_template(DEMO_TEMPLATE, team_names=['Harbour FC'])
    with pytest.raises(ValueError):
        room_from_template(DEMO_TEMPLATE, team_names=['Nowhere FC', 'Harbour FC'])


def test_load_and_list_templates(tmp_path):
    custom = {
        'metadata': {'id': 'mini', 'name': 'Mini', 'members_per_team': 2, 'min_teams': 2, 'max_teams': 2},
        'teams': [
            {'name': 'A', 'captain': {'nickname': 'Ann'}, 'members': [{'nickname': 'a1', 'position': 'X'}]},
            {'name': 'B', 'captain': {'nickname': 'Ben'}, 'members': [{'nickname': 'b1', 'position': 'X'}]},
        ]
    }
    (tmp_path / 'mini.json').write_text(json.dumps(custom), encoding='utf-8')
    (tmp_path / 'broken.json').write_text('{"metadata": {}}', encoding='utf-8')

    assert load_template(tmp_path / 'mini.json')['metadata']['id'] == 'mini'

    templates = list_templates(tmp_path)
    assert set(templates) == {'demo-league', 'mini'}

    room = room_from_template(templates['mini'])
    assert room.member_per_team == 1
    assert len(room.members()) == 2


def test_invalid_template_rejected(tmp_path):
    path = tmp_path / 'bad.json'
    path.write_text(json.dumps({'metadata': {'id': 'x', 'name': 'X'}, 'teams': []}), encoding='utf-8')
    with pytest.raises(ValueError):
        load_template(path)
