"""
Domain models — immutable records for CA sets, versions, activations,
associations and deletion status.

These are pure value objects mirroring what the remote trust-store service
returns. The orchestration layer never mutates them; each reconciliation
pass works on a fresh projection fetched from the service.

All models are frozen dataclasses (immutable) following functional principles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, unique


@unique
class Network(Enum):
    STAGING = "STAGING"
    PRODUCTION = "PRODUCTION"


@unique
class ActivationType(Enum):
    ACTIVATE = "ACTIVATE"
    DEACTIVATE = "DEACTIVATE"

    @property
    def label(self) -> str:
        """Lower-case noun used in messages: "activation" / "deactivation"."""
        return self.value.lower().removesuffix("e") + "ion"


@unique
class ActivationStatus(Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@unique
class VersionStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@unique
class CASetStatus(Enum):
    NOT_DELETED = "NOT_DELETED"
    DELETING = "DELETING"
    DELETED = "DELETED"


@unique
class DeletionState(Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class CASet:
    """
    A named, versioned bundle of trust anchors, as owned by the remote service.

    The three version pointers are optional: a freshly created set has no
    version until the first one is added, and a set that is not live on a
    network has no version for it.
    """

    ca_set_id: str
    name: str
    account_id: str | None = None
    description: str | None = None
    created_by: str | None = None
    created_date: datetime | None = None
    latest_version: int | None = None
    staging_version: int | None = None
    production_version: int | None = None
    status: CASetStatus = CASetStatus.NOT_DELETED

    def active_version(self, network: Network) -> int | None:
        if network is Network.STAGING:
            return self.staging_version
        return self.production_version


@dataclass(frozen=True, slots=True)
class CertificateInput:
    """A certificate as submitted by the caller: PEM text plus an optional note."""

    certificate_pem: str = field(repr=False)
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Certificate:
    """A certificate as stored by the service, with server-computed metadata."""

    certificate_pem: str = field(repr=False)
    description: str | None = None
    created_by: str | None = None
    created_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    fingerprint: str | None = None
    issuer: str | None = None
    serial_number: str | None = None
    signature_algorithm: str | None = None
    subject: str | None = None


@dataclass(frozen=True, slots=True)
class CASetVersion:
    """
    One version of a CA set.

    Invariant: once a version has taken part in a completed ACTIVATE
    activation on any network it must never be edited in place; see
    `truststore_manager.domain.mutation`.
    """

    ca_set_id: str
    version: int
    allow_insecure_sha1: bool = False
    description: str | None = None
    staging_status: VersionStatus = VersionStatus.INACTIVE
    production_status: VersionStatus = VersionStatus.INACTIVE
    certificates: tuple[Certificate, ...] = ()
    created_by: str | None = None
    created_date: datetime | None = None
    modified_by: str | None = None
    modified_date: datetime | None = None

    def status_on(self, network: Network) -> VersionStatus:
        if network is Network.STAGING:
            return self.staging_status
        return self.production_status


@dataclass(frozen=True, slots=True)
class VersionEdit:
    """The caller's desired content for the latest version of a CA set."""

    certificates: tuple[CertificateInput, ...]
    allow_insecure_sha1: bool = False
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Activation:
    """
    A single activate-or-deactivate attempt.

    History is append-only per (ca_set_id, network); the service guarantees
    at most one IN_PROGRESS record per pair.
    """

    activation_id: int
    ca_set_id: str
    version: int
    network: Network
    activation_type: ActivationType
    status: ActivationStatus
    created_by: str | None = None
    created_date: datetime | None = None
    modified_by: str | None = None
    modified_date: datetime | None = None
    retry_after: datetime | None = None

    def is_completed(self, activation_type: ActivationType) -> bool:
        return self.status is ActivationStatus.COMPLETE and self.activation_type is activation_type


@dataclass(frozen=True, slots=True)
class ActivationRequest:
    """What the caller wants live (or no longer live): a version on a network."""

    ca_set_id: str
    version: int
    network: Network


@dataclass(frozen=True, slots=True)
class PropertyAssociation:
    property_id: str
    property_name: str | None = None
    asset_id: int | None = None
    group_id: int | None = None
    hostnames: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class EnrollmentAssociation:
    enrollment_id: int
    cn: str
    staging_slots: tuple[int, ...] = ()
    production_slots: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class Associations:
    """Read-only snapshot of what references a CA set."""

    properties: tuple[PropertyAssociation, ...] = ()
    enrollments: tuple[EnrollmentAssociation, ...] = ()

    @property
    def in_use(self) -> bool:
        return bool(self.properties) or bool(self.enrollments)


@dataclass(frozen=True, slots=True)
class NetworkDeletion:
    network: Network
    status: DeletionState
    percent_complete: int | None = None


@dataclass(frozen=True, slots=True)
class CASetDeletionStatus:
    """Progress of an asynchronous CA set deletion across all networks."""

    ca_set_id: str
    status: DeletionState
    networks: tuple[NetworkDeletion, ...] = ()
    retry_after: datetime | None = None
    failure_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationFinding:
    """
    One problem reported by the remote certificate validator.

    `index` points at the offending element of the submitted certificate
    list; it is None when the server pointer could not be resolved.
    """

    pointer: str
    detail: str
    index: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {"pointer": self.pointer, "detail": self.detail, "index": self.index}
