"""
Acceptance test fixtures: the real component graph over HTTP, answered by
an in-memory trust-store service.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import respx

from tests.acceptance.fake_service import BASE_URL, FakeTrustStoreService
from tests.builders import FakeClock
from truststore_manager.adapters.http_client import HttpTrustStoreClient
from truststore_manager.config import TimeoutSettings
from truststore_manager.domain.activation import ActivationOrchestrator
from truststore_manager.domain.associations import AssociationGuard
from truststore_manager.domain.deletion import DeletionCoordinator
from truststore_manager.domain.drift import DriftReconciler
from truststore_manager.domain.mutation import MutationGuard
from truststore_manager.main import Resources
from truststore_manager.resources.ca_set import CASetResource
from truststore_manager.resources.ca_set_activation import CASetActivationResource


@pytest.fixture()
def service() -> Iterator[FakeTrustStoreService]:
    """A fresh fake service with its routes installed on a respx router."""
    fake = FakeTrustStoreService()
    with respx.mock(assert_all_called=False) as router:
        fake.install(router)
        yield fake


@pytest.fixture()
def resources(service: FakeTrustStoreService, clock: FakeClock) -> Iterator[Resources]:
    """The real component graph over the HTTP client, driven by the FakeClock."""
    client = HttpTrustStoreClient(base_url=BASE_URL, access_token="acceptance-token")
    guard = AssociationGuard(client)
    timeouts = TimeoutSettings()
    orchestrator = ActivationOrchestrator(client, clock=clock, poll_interval=5.0, guard=guard)
    deletion = DeletionCoordinator(client, guard, clock=clock)
    yield Resources(
        client=client,
        ca_set=CASetResource(client, MutationGuard(client, client), deletion, guard, timeouts),
        ca_set_activation=CASetActivationResource(orchestrator, DriftReconciler(client, client), client, timeouts),
    )
    client.close()
