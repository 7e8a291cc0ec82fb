"""Control-plane client and server provisioning with idempotent key registration."""

from __future__ import annotations

import enum
import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests
from loguru import logger

from .errors import ProvisionError
from .identity import KeyMaterial

log = logger

# (code, label, summary) in menu order.
SIZE_CLASSES = [
    ('cpx11', 'Small', '2 GB / 2 CPU, light usage'),
    ('cpx21', 'Medium', '4 GB / 3 CPU, recommended'),
    ('cpx31', 'Large', '8 GB / 4 CPU, heavy usage'),
    ('cpx41', 'Extra Large', '16 GB / 8 CPU, power user'),
]

LOCATIONS = [
    ('ash', 'Ashburn, US', 'US East'),
    ('hil', 'Hillsboro, US', 'US West'),
    ('nbg1', 'Nuremberg, DE', 'Europe'),
    ('hel1', 'Helsinki, FI', 'Europe'),
]


class ServerState(str, enum.Enum):
    CREATING = 'Creating'
    BOOTING = 'Booting'
    REACHABLE = 'Reachable'
    FAILED = 'Failed'


@dataclass(frozen=True)
class ServerSpec:
    name: str
    size_class: str
    location: str
    image_id: str
    key_reference: str = ''


@dataclass
class ProvisionedServer:
    id: str
    public_address: str
    state: ServerState = ServerState.CREATING

    def _transition(self, allowed: set[ServerState], new: ServerState) -> None:
        if self.state not in allowed:
            raise ProvisionError(
                f'Invalid server state transition {self.state.value} -> {new.value}'
            )
        self.state = new

    def mark_booting(self) -> None:
        self._transition({ServerState.CREATING}, ServerState.BOOTING)

    def mark_reachable(self) -> None:
        self._transition(
            {ServerState.BOOTING, ServerState.REACHABLE}, ServerState.REACHABLE
        )

    def mark_failed(self) -> None:
        self._transition(
            {ServerState.CREATING, ServerState.BOOTING}, ServerState.FAILED
        )


class ControlPlane(Protocol):
    def create_key(self, name: str, public_key: str) -> dict: ...

    def list_keys(self, fingerprint: Optional[str] = None) -> list[dict]: ...

    def create_server(self, payload: dict) -> dict: ...

    def check_token(self) -> bool: ...


class HetznerControlPlane:
    """Thin Hetzner Cloud API client.

    Responses are returned as decoded JSON whatever the HTTP status: callers
    decide success by response shape, mirroring how the API reports
    duplicates and validation problems in the body.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = 'https://api.hetzner.cloud/v1',
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        page_size: int = 50,
    ):
        if not token:
            raise ProvisionError(
                'A Hetzner API token is required (HETZNER_TOKEN or the wizard).'
            )
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                'Authorization': f'Bearer {token}',
                'Content-Type': 'application/json',
            }
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        url = f'{self.base_url}{endpoint}'
        log.debug('API {} {} params={}', method, url, params)
        try:
            resp = self.session.request(
                method, url, json=data, params=params, timeout=self.timeout
            )
        except requests.RequestException as ex:
            raise ProvisionError(
                f'Control plane request failed: {method} {endpoint}: {ex}'
            ) from ex
        try:
            body = resp.json()
        except ValueError as ex:
            raise ProvisionError(
                f'Control plane returned a non-JSON body for {method} {endpoint} '
                f'(status={resp.status_code})',
                response=resp.text,
            ) from ex
        log.debug('API {} {} -> status={}', method, endpoint, resp.status_code)
        return body

    def create_key(self, name: str, public_key: str) -> dict:
        return self._request(
            'POST', '/ssh_keys', {'name': name, 'public_key': public_key}
        )

    def list_keys(self, fingerprint: Optional[str] = None) -> list[dict]:
        """All registered keys, optionally filtered by fingerprint.

        The listing is paginated; every page is fetched.
        """
        params: dict = {'per_page': self.page_size}
        if fingerprint:
            params['fingerprint'] = fingerprint
        keys: list[dict] = []
        page: Any = 1
        while page:
            params['page'] = page
            body = self._request('GET', '/ssh_keys', params=dict(params))
            if not isinstance(body, dict):
                raise ProvisionError('Unexpected key listing response', body)
            keys.extend(body.get('ssh_keys', []) or [])
            next_page = _dig(body, 'meta', 'pagination', 'next_page')
            if next_page is not None and next_page <= page:
                raise ProvisionError('Key listing pagination did not advance', body)
            page = next_page
        return keys

    def create_server(self, payload: dict) -> dict:
        return self._request('POST', '/servers', payload)

    def check_token(self) -> bool:
        try:
            body = self._request('GET', '/servers')
        except ProvisionError:
            return False
        return isinstance(body, dict) and 'servers' in body


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def default_server_name(prefix: str = 'openclaw') -> str:
    return f'{prefix}-{secrets.token_hex(4)}'


def resolve_key_id(
    api: ControlPlane, key: KeyMaterial, *, key_name: str
) -> str:
    """Register ``key`` or fall back to the existing registration.

    The API has no upsert, so a create that does not yield an id is
    followed by a lookup by fingerprint.
    """
    log.info('Uploading SSH key to the control plane...')
    created = api.create_key(key_name, key.public_key_blob)
    key_id = _dig(created, 'ssh_key', 'id')
    if key_id is not None:
        log.info('SSH key uploaded (id: {})', key_id)
        return str(key_id)
    for item in api.list_keys(fingerprint=key.fingerprint):
        if item.get('fingerprint') == key.fingerprint and item.get('id') is not None:
            log.info('SSH key already registered (id: {})', item['id'])
            return str(item['id'])
    raise ProvisionError(
        'Failed to register SSH key with the control plane. Check your API token.',
        response=created,
    )


def provision(
    spec: ServerSpec,
    key: KeyMaterial,
    api: ControlPlane,
    *,
    key_name: Optional[str] = None,
) -> ProvisionedServer:
    """Create one server for ``spec`` and return it in the Booting state.

    A key registered before a failed server creation stays registered; the
    next attempt reuses it through the fingerprint lookup.
    """
    key_name = key_name or f'clawup-{int(time.time())}'
    key_id = spec.key_reference or resolve_key_id(api, key, key_name=key_name)
    name = spec.name or default_server_name()
    log.info(
        'Creating server: {} ({} in {})...', name, spec.size_class, spec.location
    )
    payload = {
        'name': name,
        'server_type': spec.size_class,
        'image': spec.image_id,
        'location': spec.location,
        'ssh_keys': [int(key_id) if key_id.isdigit() else key_id],
        'start_after_create': True,
    }
    response = api.create_server(payload)
    address = _dig(response, 'server', 'public_net', 'ipv4', 'ip')
    server_id = _dig(response, 'server', 'id')
    if not address:
        raise ProvisionError(
            'Failed to create server. Check your API token and account limits.',
            response=response,
        )
    server = ProvisionedServer(id=str(server_id or ''), public_address=str(address))
    server.mark_booting()
    log.info('Server created! IP: {}', server.public_address)
    return server
