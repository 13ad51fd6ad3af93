"""
Room templates.

A template is a ready-made roster: per team a captain and the members that
go into the shared auction pool. Template files are JSON:

    {
      "metadata": {"id", "name", "description", "min_teams", "max_teams",
                   "members_per_team", "default_points"},
      "teams": [
        {"name": ..., "captain": {"nickname", "position", "description"},
         "members": [{"nickname", "position", "description"}, ...]}
      ]
    }

members_per_team counts the captain, so each team auctions for
members_per_team - 1 slots.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .. import config
from .draft_event import Room, create_initial_room

logger = logging.getLogger(__name__)


DEMO_TEMPLATE = {
    'metadata': {
        'id': 'demo-league',
        'name': 'Demo League',
        'description': 'Four five-a-side clubs for trying out a draft',
        'min_teams': 2,
        'max_teams': 4,
        'members_per_team': 5,
        'default_points': 1000,
    },
    'teams': [
        {
            'name': 'Harbour FC',
            'captain': {'nickname': 'Morgan', 'position': 'Manager'},
            'members': [
                {'nickname': 'Alder', 'position': 'GK'},
                {'nickname': 'Birch', 'position': 'DF'},
                {'nickname': 'Cedar', 'position': 'MF'},
                {'nickname': 'Dune', 'position': 'FW'},
            ],
        },
        {
            'name': 'Northgate United',
            'captain': {'nickname': 'Rowan', 'position': 'Manager'},
            'members': [
                {'nickname': 'Elm', 'position': 'GK'},
                {'nickname': 'Fern', 'position': 'DF'},
                {'nickname': 'Gale', 'position': 'MF'},
                {'nickname': 'Heath', 'position': 'FW'},
            ],
        },
        {
            'name': 'Riverside Athletic',
            'captain': {'nickname': 'Sasha', 'position': 'Manager'},
            'members': [
                {'nickname': 'Ivy', 'position': 'GK'},
                {'nickname': 'Juniper', 'position': 'DF'},
                {'nickname': 'Kestrel', 'position': 'MF'},
                {'nickname': 'Larch', 'position': 'FW'},
            ],
        },
        {
            'name': 'Old Town Rovers',
            'captain': {'nickname': 'Taylor', 'position': 'Manager'},
            'members': [
                {'nickname': 'Maple', 'position': 'GK'},
                {'nickname': 'Nettle', 'position': 'DF'},
                {'nickname': 'Oak', 'position': 'MF'},
                {'nickname': 'Pine', 'position': 'FW'},
            ],
        },
    ],
}


def validate_template(template: Dict) -> None:
    """
    Raises:
        ValueError: If required fields are missing or inconsistent
    """
    metadata = template.get('metadata')
    teams = template.get('teams')
    if not isinstance(metadata, dict) or not isinstance(teams, list):
        raise ValueError("Template needs 'metadata' and 'teams'")

    for key in ('id', 'name', 'members_per_team'):
        if key not in metadata:
            raise ValueError(f"Template metadata missing '{key}'")

    if metadata['members_per_team'] < 1:
        raise ValueError("members_per_team must count at least the captain")

    for i, team in enumerate(teams, 1):
        if 'name' not in team or 'captain' not in team:
            raise ValueError(f"Template team {i} needs 'name' and 'captain'")
        if 'nickname' not in team['captain']:
            raise ValueError(f"Captain of template team {team['name']} has no nickname")


def load_template(filepath: Path) -> Dict:
    """Load and validate a template JSON file."""
    filepath = Path(filepath)
    with open(filepath, 'r', encoding='utf-8') as f:
        template = json.load(f)

    validate_template(template)
    logger.info(f"Loaded template {template['metadata']['id']} from {filepath}")
    return template


def list_templates(templates_dir: Optional[Path] = None) -> Dict[str, Dict]:
    """
    All known templates by id: the built-in demo plus every *.json file in
    templates_dir. Files that fail to load are logged and skipped.
    """
    templates = {DEMO_TEMPLATE['metadata']['id']: DEMO_TEMPLATE}

    templates_dir = Path(templates_dir or config.TEMPLATES_DIR)
    if not templates_dir.exists():
        return templates

    for filepath in sorted(templates_dir.glob('*.json')):
        try:
            template = load_template(filepath)
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Skipping template {filepath}: {e}")
            continue
        templates[template['metadata']['id']] = template

    return templates


def room_from_template(
    template: Dict,
    title: Optional[str] = None,
    team_names: Optional[List[str]] = None,
    total_points: Optional[int] = None,
    room_id: Optional[str] = None
) -> Room:
    """
    Create a WAITING room from a template.

    Args:
        template: Template dict (see module docstring)
        title: Room title (template name if None)
        team_names: Teams to include, by name, in template order (all if None)
        total_points: Points per team (template default if None)
        room_id: Optional fixed room id

    Returns:
        Room with the selected teams' captains and their members pooled for
        the auction
    """
    validate_template(template)
    metadata = template['metadata']

    teams = template['teams']
    if team_names is not None:
        unknown = set(team_names) - {t['name'] for t in teams}
        if unknown:
            raise ValueError(f"Unknown template teams: {', '.join(sorted(unknown))}")
        teams = [t for t in teams if t['name'] in team_names]

    min_teams = metadata.get('min_teams', config.MIN_TEAM_COUNT)
    max_teams = metadata.get('max_teams', len(template['teams']))
    if not min_teams <= len(teams) <= max_teams:
        raise ValueError(
            f"Template {metadata['id']} allows {min_teams}-{max_teams} teams, got {len(teams)}"
        )

    captains = []
    members = []
    for team in teams:
        captain = dict(team['captain'])
        captain['team_name'] = team['name']
        captains.append(captain)
        members.extend(team.get('members', []))

    room = create_initial_room(
        title=title or metadata['name'],
        team_count=len(teams),
        member_per_team=metadata['members_per_team'] - 1,
        total_points=total_points or metadata.get('default_points', config.DEFAULT_TOTAL_POINTS),
        captains=captains,
        members=members,
        room_id=room_id
    )

    logger.info(
        f"Created room {room.room_id} from template {metadata['id']}: "
        f"{len(teams)} teams, {len(members)} members"
    )
    return room
