"""
Ports — Protocol-based interfaces for the remote trust-store service.

These define WHAT the orchestration logic needs from the service without
specifying HOW the calls travel. Each component depends on the narrowest
port it uses; the HTTP adapter satisfies all of them at once.

Every call returns Result[T]. A missing CA set or version is reported as
Failure(NOT_FOUND) so callers can decide whether absence is an error or
"already gone".
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Protocol, runtime_checkable

from railway.result import Result

from truststore_manager.domain.models import (
    Activation,
    Associations,
    CASet,
    CASetDeletionStatus,
    CASetVersion,
    CertificateInput,
    Network,
    VersionEdit,
)


@runtime_checkable
class CASetReader(Protocol):
    """Port: read CA sets and their versions."""

    def get_ca_set(self, ca_set_id: str) -> Result[CASet]: ...

    def get_ca_set_version(self, ca_set_id: str, version: int) -> Result[CASetVersion]: ...


@runtime_checkable
class ActivationGateway(Protocol):
    """
    Port: inspect activation history and submit activate/deactivate requests.

    `activate_version` / `deactivate_version` return the freshly created
    IN_PROGRESS Activation, including the server's retry_after hint.
    """

    def list_activations(self, ca_set_id: str) -> Result[list[Activation]]: ...

    def list_version_activations(self, ca_set_id: str, version: int) -> Result[list[Activation]]: ...

    def get_activation(self, ca_set_id: str, version: int, activation_id: int) -> Result[Activation]: ...

    def activate_version(self, ca_set_id: str, version: int, network: Network) -> Result[Activation]: ...

    def deactivate_version(self, ca_set_id: str, version: int, network: Network) -> Result[Activation]: ...


@runtime_checkable
class VersionWriter(Protocol):
    """Port: create CA sets and create, clone or edit their versions."""

    def create_ca_set(self, name: str, description: str | None = None) -> Result[CASet]: ...

    def create_version(self, ca_set_id: str, edit: VersionEdit) -> Result[CASetVersion]: ...

    def clone_version(
        self, ca_set_id: str, version: int, description: str | None = None
    ) -> Result[CASetVersion]: ...

    def update_version(self, ca_set_id: str, version: int, edit: VersionEdit) -> Result[CASetVersion]: ...

    def validate_certificates(
        self, certificates: tuple[CertificateInput, ...], allow_insecure_sha1: bool
    ) -> Result[int]:
        """
        Ask the remote validator to check the certificates.

        Returns the number of accepted certificates, or Failure(VALIDATION_ERROR)
        whose details hold one ValidationFinding per rejected certificate.
        """
        ...


@runtime_checkable
class DeletionGateway(Protocol):
    """Port: start a CA set deletion and watch its progress."""

    def delete_ca_set(self, ca_set_id: str) -> Result[str]: ...

    def get_deletion_status(self, ca_set_id: str) -> Result[CASetDeletionStatus]: ...


@runtime_checkable
class AssociationReader(Protocol):
    """Port: list properties and enrollments referencing a CA set."""

    def list_associations(self, ca_set_id: str) -> Result[Associations]: ...


@runtime_checkable
class TrustStoreClient(
    CASetReader,
    ActivationGateway,
    VersionWriter,
    DeletionGateway,
    AssociationReader,
    Protocol,
):
    """The full remote client surface, as implemented by the HTTP adapter."""


@runtime_checkable
class Clock(Protocol):
    """
    Port: time source and cancellable sleep.

    `sleep` returns True when it was woken early by the cancellation token,
    False when the full duration elapsed.
    """

    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool: ...
