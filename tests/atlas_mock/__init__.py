"""Atlas API mock for integration testing.

This package provides an in-memory implementation of the remote API client
surface so convergers and the project reconciler can be exercised without
network access.

Key Features:
- In-memory state per category, stored as raw camelCase records
- Paged listings with a configurable page size
- Conflict (409) and not-found (404) behavior of the real endpoints
- Error injection per client method for failure scenarios
- Redaction of notification secrets on read

Usage:
    from atlas_mock import MockAtlasClient, MockAtlasState

    state = MockAtlasState()
    state.add_container("AWS", atlasCidrBlock="10.8.0.0/21", regionName="US_EAST_1")
    client = MockAtlasClient(state)

    report = await sync_network_peers(ctx, client, desired, owned)
    assert state.call_count("create_peer") == 1
"""

from .client import MockAtlasClient
from .secrets import InMemorySecretStore
from .state import MockAtlasState, http_error

__all__ = [
    "InMemorySecretStore",
    "MockAtlasClient",
    "MockAtlasState",
    "http_error",
]
