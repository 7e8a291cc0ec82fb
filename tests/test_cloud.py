"""Tests for provisioning against a fake control plane."""

from __future__ import annotations

import pytest
import requests

from clawup.cloud import (
    HetznerControlPlane,
    ProvisionedServer,
    ServerSpec,
    ServerState,
    default_server_name,
    provision,
    resolve_key_id,
)
from clawup.errors import ProvisionError
from clawup.identity import KeyMaterial

KEY = KeyMaterial(
    private_key_path='/k/clawup_ed25519',
    public_key_blob='ssh-ed25519 AAAA test',
    fingerprint='aa:bb:cc',
)


class FakeControlPlane:
    def __init__(self, *, existing_keys=(), server_response=None):
        self.keys = list(existing_keys)
        self.created_servers = []
        self.server_response = server_response
        self.key_creates = 0
        self.key_lookups = []

    def create_key(self, name, public_key):
        self.key_creates += 1
        for item in self.keys:
            if item['public_key'] == public_key:
                return {'error': {'code': 'uniqueness_error'}}
        item = {
            'id': 100 + len(self.keys),
            'name': name,
            'public_key': public_key,
            'fingerprint': KEY.fingerprint,
        }
        self.keys.append(item)
        return {'ssh_key': item}

    def list_keys(self, fingerprint=None):
        self.key_lookups.append(fingerprint)
        return list(self.keys)

    def create_server(self, payload):
        self.created_servers.append(payload)
        if self.server_response is not None:
            return self.server_response
        return {
            'server': {
                'id': 42,
                'public_net': {'ipv4': {'ip': '203.0.113.7'}},
            }
        }

    def check_token(self):
        return True


def _spec(name='claw-1'):
    return ServerSpec(
        name=name, size_class='cpx21', location='ash', image_id='ubuntu-24.04'
    )


def test_provision_registers_key_and_creates_server() -> None:
    api = FakeControlPlane()
    server = provision(_spec(), KEY, api, key_name='clawup-1')
    assert server.public_address == '203.0.113.7'
    assert server.id == '42'
    assert server.state == ServerState.BOOTING
    payload = api.created_servers[0]
    assert payload['name'] == 'claw-1'
    assert payload['server_type'] == 'cpx21'
    assert payload['location'] == 'ash'
    assert payload['image'] == 'ubuntu-24.04'
    assert payload['ssh_keys'] == [100]
    assert payload['start_after_create'] is True


def test_duplicate_key_is_resolved_by_fingerprint() -> None:
    api = FakeControlPlane()
    provision(_spec('a'), KEY, api, key_name='clawup-1')
    provision(_spec('b'), KEY, api, key_name='clawup-2')
    assert len(api.keys) == 1
    assert api.created_servers[1]['ssh_keys'] == [100]


def test_key_reference_skips_registration() -> None:
    api = FakeControlPlane()
    spec = ServerSpec(
        name='x',
        size_class='cpx11',
        location='hel1',
        image_id='ubuntu-24.04',
        key_reference='7',
    )
    provision(spec, KEY, api)
    assert api.key_creates == 0
    assert api.created_servers[0]['ssh_keys'] == [7]


def test_unresolvable_key_raises() -> None:
    class NoKeys(FakeControlPlane):
        def create_key(self, name, public_key):
            return {'error': {'code': 'unauthorized'}}

    with pytest.raises(ProvisionError) as excinfo:
        resolve_key_id(NoKeys(), KEY, key_name='k')
    assert excinfo.value.response == {'error': {'code': 'unauthorized'}}


def test_missing_address_raises_with_response() -> None:
    bad = {'error': {'code': 'resource_limit_exceeded'}}
    api = FakeControlPlane(server_response=bad)
    with pytest.raises(ProvisionError) as excinfo:
        provision(_spec(), KEY, api)
    assert excinfo.value.response == bad
    assert 'resource_limit_exceeded' in str(excinfo.value)


def test_default_server_name() -> None:
    name = default_server_name()
    assert name.startswith('openclaw-')
    assert len(name) == len('openclaw-') + 8
    assert default_server_name() != name

    api = FakeControlPlane()
    provision(_spec(name=''), KEY, api)
    assert api.created_servers[0]['name'].startswith('openclaw-')


def test_state_transitions() -> None:
    server = ProvisionedServer(id='1', public_address='203.0.113.7')
    assert server.state == ServerState.CREATING
    with pytest.raises(ProvisionError):
        server.mark_reachable()
    server.mark_booting()
    server.mark_reachable()
    server.mark_reachable()
    assert server.state == ServerState.REACHABLE
    with pytest.raises(ProvisionError):
        server.mark_failed()


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, json=None, params=None, timeout=None):
        self.requests.append((method, url, json, params, timeout))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_hetzner_client_requests() -> None:
    session = FakeSession(
        [
            FakeResponse(201, {'ssh_key': {'id': 5}}),
            FakeResponse(200, {'ssh_keys': [{'id': 5, 'fingerprint': 'f'}]}),
            FakeResponse(200, {'servers': []}),
        ]
    )
    api = HetznerControlPlane(
        'tok', base_url='https://api.example/v1/', session=session, timeout=9
    )
    assert session.headers['Authorization'] == 'Bearer tok'
    assert api.create_key('n', 'ssh-ed25519 AAAA') == {'ssh_key': {'id': 5}}
    assert api.list_keys() == [{'id': 5, 'fingerprint': 'f'}]
    assert api.check_token() is True
    method, url, body, _, timeout = session.requests[0]
    assert (method, url) == ('POST', 'https://api.example/v1/ssh_keys')
    assert body == {'name': 'n', 'public_key': 'ssh-ed25519 AAAA'}
    assert timeout == 9


def test_hetzner_client_errors() -> None:
    with pytest.raises(ProvisionError):
        HetznerControlPlane('')
    session = FakeSession(
        [
            requests.ConnectionError('down'),
            FakeResponse(502, ValueError('not json')),
            FakeResponse(401, {'error': {'code': 'unauthorized'}}),
        ]
    )
    api = HetznerControlPlane('tok', session=session)
    with pytest.raises(ProvisionError, match='request failed'):
        api.create_server({})
    with pytest.raises(ProvisionError, match='non-JSON'):
        api.create_server({})
    assert api.check_token() is False


def _key_page(ids, next_page):
    return FakeResponse(
        200,
        {
            'ssh_keys': [{'id': i, 'fingerprint': f'fp-{i}'} for i in ids],
            'meta': {'pagination': {'page': 1, 'next_page': next_page}},
        },
    )


def test_list_keys_follows_pagination() -> None:
    session = FakeSession(
        [
            _key_page(range(1, 3), 2),
            _key_page(range(3, 5), 3),
            _key_page([5], None),
        ]
    )
    api = HetznerControlPlane('tok', session=session, page_size=2)
    keys = api.list_keys()
    assert [k['id'] for k in keys] == [1, 2, 3, 4, 5]
    pages = [params['page'] for _, _, _, params, _ in session.requests]
    assert pages == [1, 2, 3]
    assert all(params['per_page'] == 2 for _, _, _, params, _ in session.requests)


def test_list_keys_stalled_pagination_raises() -> None:
    session = FakeSession([_key_page([1], 1)])
    api = HetznerControlPlane('tok', session=session)
    with pytest.raises(ProvisionError, match='did not advance'):
        api.list_keys()


def test_duplicate_key_found_beyond_first_page() -> None:
    mine = {'id': 77, 'fingerprint': KEY.fingerprint}
    session = FakeSession(
        [
            FakeResponse(409, {'error': {'code': 'uniqueness_error'}}),
            _key_page(range(1, 26), 2),
            FakeResponse(
                200,
                {'ssh_keys': [mine], 'meta': {'pagination': {'next_page': None}}},
            ),
        ]
    )
    api = HetznerControlPlane('tok', session=session)
    assert resolve_key_id(api, KEY, key_name='clawup-1') == '77'
    lookup_params = session.requests[1][3]
    assert lookup_params['fingerprint'] == KEY.fingerprint


def test_duplicate_key_lookup_filters_by_fingerprint() -> None:
    api = FakeControlPlane()
    provision(_spec('a'), KEY, api, key_name='clawup-1')
    provision(_spec('b'), KEY, api, key_name='clawup-2')
    assert api.key_lookups == [KEY.fingerprint]
