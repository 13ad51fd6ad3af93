import asyncio

import pytest
from fastapi.testclient import TestClient

from auction_draft.draft import api_server
from auction_draft.draft.draft_event import Phase
from auction_draft.draft.session_manager import RoomRegistry


@pytest.fixture
def registry(tmp_path, monkeypatch):
    registry = RoomRegistry(
        events_dir=tmp_path / 'events',
        checkpoints_dir=tmp_path / 'checkpoints'
    )
    monkeypatch.setattr(api_server, 'registry', registry)
    return registry


@pytest.fixture
def client(registry):
    return TestClient(api_server.app)


ROOM_REQUEST = {
    'title': 'Friday draft',
    'team_count': 2,
    'member_per_team': 1,
    'total_points': 1000,
    'captains': [
        {'nickname': 'Ann', 'team_name': 'Reds', 'captain_value': 200},
        {'nickname': 'Ben', 'team_name': 'Blues'},
    ],
    'members': [
        {'nickname': 'Cy', 'position': 'FW'},
        {'nickname': 'Di', 'position': 'GK'},
    ],
}


def create_room(client):
    response = client.post('/rooms', json=ROOM_REQUEST)
    assert response.status_code == 201
    return response.json()['room_id']


def drive_to_auction(client, registry, room_id):
    engine = registry.get(room_id)
    for captain in engine.room.captains():
        engine.presence.join(captain.participant_id)

    assert client.post(f'/rooms/{room_id}/advance', json={'actor_id': 'host'}).json()['advanced']
    client.post(f'/rooms/{room_id}/captains/next', json={'actor_id': 'host'})
    client.post(f'/rooms/{room_id}/captains/next', json={'actor_id': 'host'})
    client.post(f'/rooms/{room_id}/shuffle/start', json={'actor_id': 'host', 'seed': 17})
    client.post(f'/rooms/{room_id}/shuffle/reveal', json={'actor_id': 'host'})
    client.post(f'/rooms/{room_id}/shuffle/reveal', json={'actor_id': 'host'})
    outcome = client.post(f'/rooms/{room_id}/advance', json={'actor_id': 'host'}).json()
    assert outcome['phase'] == 'AUCTION'


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json()['status'] == 'ok'


def test_config_defaults(client):
    body = client.get('/config').json()
    assert body['initial_timer'] == 300
    assert body['initial_timer_display'] == '0:30'
    assert body['bid_unit_rules'][0] == [99, 5]


def test_create_room(client):
    response = client.post('/rooms', json=ROOM_REQUEST)
    body = response.json()

    assert response.status_code == 201
    assert body['phase'] == 'WAITING'
    roles = [p['role'] for p in body['participants']]
    assert roles.count('HOST') == 1
    assert roles.count('CAPTAIN') == 2
    assert roles.count('MEMBER') == 2

    rooms = client.get('/rooms').json()['rooms']
    assert [r['room_id'] for r in rooms] == [body['room_id']]


def test_create_room_validates_team_count(client):
    response = client.post('/rooms', json={**ROOM_REQUEST, 'team_count': 1, 'captains': []})
    assert response.status_code == 422


def test_create_room_with_too_many_captains(client):
    response = client.post('/rooms', json={**ROOM_REQUEST, 'team_count': 2, 'captains': ROOM_REQUEST['captains'] * 2})
    assert response.status_code == 400


def test_unknown_room(client):
    response = client.get('/rooms/missing')
    assert response.status_code == 404
    assert response.json()['detail']['error'] == 'RoomNotFoundError'


def test_advance_requires_host(client):
    room_id = create_room(client)
    response = client.post(f'/rooms/{room_id}/advance', json={'actor_id': 'captain_01'})

    assert response.status_code == 403
    assert response.json()['detail']['reason'] == 'unauthorized'


def test_advance_precondition_is_not_an_error(client):
    room_id = create_room(client)
    response = client.post(f'/rooms/{room_id}/advance', json={'actor_id': 'host'})

    assert response.status_code == 200
    body = response.json()
    assert body['advanced'] is False
    assert body['reason'] == 'captains_offline'


def test_bidding_over_http(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)

    response = client.post(f'/rooms/{room_id}/bids', json={'actor_id': 'captain_01', 'amount': 50})
    assert response.status_code == 200
    body = response.json()
    assert body['current_price'] == 50
    assert body['next_min_bid'] == 55
    assert body['timer'] == 320

    response = client.post(
        f'/rooms/{room_id}/bids',
        json={'actor_id': 'captain_02', 'amount': 52, 'observed_price': 50}
    )
    assert response.status_code == 409
    assert response.json()['detail']['reason'] == 'below_minimum'

    response = client.post(f'/rooms/{room_id}/bids', json={'actor_id': 'host', 'amount': 100})
    assert response.status_code == 403

    snapshot = client.get(f'/rooms/{room_id}').json()
    assert snapshot['phase'] == 'AUCTION'
    assert snapshot['auction']['leading_team_id'] == 'team_01'


def test_pass_and_finish(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)

    for _ in range(2):
        response = client.post(f'/rooms/{room_id}/pass', json={'actor_id': 'host'})
        assert response.status_code == 200
        assert response.json()['sold'] is False

    response = client.post(f'/rooms/{room_id}/pass', json={'actor_id': 'host'})
    assert response.status_code == 409

    outcome = client.post(f'/rooms/{room_id}/advance', json={'actor_id': 'host'}).json()
    assert outcome['phase'] == 'FINISHED'

    results = client.get(f'/rooms/{room_id}/results').json()['results']
    assert len(results) == 2
    assert all(r['is_auto_assignment'] for r in results)

    teams = client.get(f'/rooms/{room_id}/teams').json()['teams']
    assert [t['members'] for t in teams] == [1, 1]
    assert [t['current_points'] for t in teams] == [800, 1000]

    summary = client.get(f'/rooms/{room_id}/summary').json()
    assert summary['sold_prices'] == {}


def test_reset_over_http(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)

    response = client.post(f'/rooms/{room_id}/reset', json={'actor_id': 'captain_01'})
    assert response.status_code == 403

    response = client.post(f'/rooms/{room_id}/reset', json={'actor_id': 'host'})
    assert response.status_code == 200
    assert response.json()['phase'] == 'WAITING'


def test_resume_from_checkpoint(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)
    client.delete(f'/rooms/{room_id}')
    assert client.get(f'/rooms/{room_id}').status_code == 404

    response = client.post(f'/rooms/{room_id}/resume')
    assert response.status_code == 200
    assert response.json()['phase'] == 'AUCTION'


def test_templates_and_template_rooms(client):
    templates = client.get('/templates').json()['templates']
    assert 'demo-league' in [t['id'] for t in templates]

    response = client.post('/rooms/from-template', json={'template_id': 'demo-league'})
    assert response.status_code == 201
    roles = [p['role'] for p in response.json()['participants']]
    assert roles.count('CAPTAIN') == 4

    response = client.post('/rooms/from-template', json={'template_id': 'missing'})
    assert response.status_code == 404


def test_websocket_snapshot_presence_and_errors(client, registry):
    room_id = create_room(client)

    with client.websocket_connect(f'/ws/rooms/{room_id}/captain_01') as ws:
        snapshot = ws.receive_json()
        assert snapshot['type'] == 'SNAPSHOT'
        online = {p['participant_id']: p['is_online'] for p in snapshot['payload']['participants']}
        assert online['captain_01'] is True
        assert registry.get(room_id).presence.is_online('captain_01')

        ws.send_json({'action': 'bid', 'amount': 50})
        reply = ws.receive_json()
        assert reply['type'] == 'ERROR'
        assert reply['error']['reason'] == 'wrong_phase'


def test_websocket_streams_events(client, registry):
    room_id = create_room(client)
    registry.get(room_id).presence.join('captain_02')

    with client.websocket_connect(f'/ws/rooms/{room_id}/captain_01') as captain_ws:
        captain_ws.receive_json()
        with client.websocket_connect(f'/ws/rooms/{room_id}/host') as host_ws:
            host_ws.receive_json()
            host_ws.send_json({'action': 'advance'})

            messages = [host_ws.receive_json(), host_ws.receive_json()]
            event = next(m for m in messages if m['type'] == 'EVENT')
            assert event['event']['type'] == 'PHASE_CHANGED'
            assert event['event']['payload']['phase'] == 'CAPTAIN_INTRO'

        streamed = captain_ws.receive_json()
        assert streamed['type'] == 'EVENT'
        assert streamed['event']['type'] == 'PHASE_CHANGED'


def test_host_resolves_after_expiry(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)
    client.post(f'/rooms/{room_id}/bids', json={'actor_id': 'captain_02', 'amount': 40})

    response = client.post(f'/rooms/{room_id}/resolve', json={'actor_id': 'host'})
    assert response.status_code == 400
    assert response.json()['detail']['reason'] == 'timer_running'

    engine = registry.get(room_id)
    while engine.tick():
        pass
    assert client.get(f'/rooms/{room_id}').json()['auction']['item'] is not None

    response = client.post(f'/rooms/{room_id}/resolve', json={'actor_id': 'captain_01'})
    assert response.status_code == 403

    response = client.post(f'/rooms/{room_id}/resolve', json={'actor_id': 'host'})
    assert response.status_code == 200
    body = response.json()
    assert body['sold'] is True
    assert body['result']['winner_team_id'] == 'team_02'
    assert body['result']['final_price'] == 40


def test_websocket_resolve_action(client, registry):
    room_id = create_room(client)
    drive_to_auction(client, registry, room_id)
    engine = registry.get(room_id)
    while engine.tick():
        pass

    with client.websocket_connect(f'/ws/rooms/{room_id}/host') as ws:
        snapshot = ws.receive_json()
        assert snapshot['last_event']['type'] == 'TIMER_SYNC'
        assert snapshot['last_event']['payload']['timer'] == 0

        ws.send_json({'action': 'resolve'})
        messages = [ws.receive_json() for _ in range(3)]
        ack = next(m for m in messages if m['type'] == 'ACK')
        assert ack['payload']['sold'] is False
        events = [m['event']['type'] for m in messages if m['type'] == 'EVENT']
        assert events == ['ITEM_PASSED', 'NEXT_ROUND_STARTED']


class StubRoom:
    phase = Phase.AUCTION


class StubEngine:
    room = StubRoom()

    def __init__(self, room_id, error=None):
        self.room_id = room_id
        self.error = error
        self.ticks = 0

    def tick(self):
        self.ticks += 1
        if self.error is not None:
            raise self.error


class StubRegistry:
    def __init__(self, engines):
        self.engines = engines

    def list_rooms(self):
        return list(self.engines)


def test_ticker_survives_a_failing_room(monkeypatch):
    broken = StubEngine('broken', error=RuntimeError('boom'))
    healthy = StubEngine('healthy')
    monkeypatch.setattr(api_server, 'registry', StubRegistry([broken, healthy]))
    monkeypatch.setattr(api_server.config, 'TIMER_INTERVAL_MS', 1)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(asyncio.wait_for(api_server._tick_rooms(), timeout=0.2))

    assert broken.ticks > 1
    assert healthy.ticks > 1


class ClosedSocket:
    async def send_json(self, message):
        raise RuntimeError('socket closed')


def test_failed_send_is_collected():
    async def scenario():
        queue = asyncio.Queue()
        queue.put_nowait({'type': 'EVENT'})
        sender = asyncio.create_task(api_server._pump(ClosedSocket(), queue))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await api_server._stop_sender(sender, 'test')
        return sender

    sender = asyncio.run(scenario())

    assert sender.done()
    assert isinstance(sender.exception(), RuntimeError)
