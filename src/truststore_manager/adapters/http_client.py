"""
HTTP adapter — the remote mTLS trust-store API over httpx.

Adapter layer — implements every domain port (CASetReader, ActivationGateway,
VersionWriter, DeletionGateway, AssociationReader) with one shared
httpx.Client rooted at `{base_url}/mtls-edge-truststore/v2`.

Request signing is not done here: callers pass an `httpx.Auth` that signs
each request, or a bearer access token for simple deployments.

Retry/backoff via tenacity on transient errors (network, timeout), for
idempotent GET calls only. Mutating calls (create, clone, update, activate,
deactivate, delete) are sent exactly once. All HTTP errors are captured
into Result failures — no exceptions leak to the domain layer.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any, TypeVar

import httpx
import structlog
from railway import ErrorCode, HttpStatusMapper
from railway.result import Result
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from truststore_manager.domain.models import (
    Activation,
    ActivationStatus,
    ActivationType,
    Associations,
    CASet,
    CASetDeletionStatus,
    CASetStatus,
    CASetVersion,
    Certificate,
    CertificateInput,
    DeletionState,
    EnrollmentAssociation,
    Network,
    NetworkDeletion,
    PropertyAssociation,
    ValidationFinding,
    VersionEdit,
    VersionStatus,
)

log = structlog.get_logger()

T = TypeVar("T")

API_PREFIX = "/mtls-edge-truststore/v2"

_CERTIFICATES_POINTER = "/certificates/"


class HttpTrustStoreClient:
    """
    Typed client for the trust-store service.

    Implements the TrustStoreClient port. One instance holds one connection
    pool; call `close()` (or use it as a context manager) when done.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 60,
        max_attempts: int = 3,
        auth: httpx.Auth | None = None,
        access_token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._http = httpx.Client(
            base_url=base_url.rstrip("/") + API_PREFIX,
            timeout=timeout,
            auth=auth,
            headers=headers,
            transport=transport,
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=0.1, max=30),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> HttpTrustStoreClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ── CASetReader ────────────────────────────────────────────────

    def get_ca_set(self, ca_set_id: str) -> Result[CASet]:
        return self._get(f"/ca-sets/{ca_set_id}", "get CA set", lambda r: _parse_ca_set(r.json()))

    def get_ca_set_version(self, ca_set_id: str, version: int) -> Result[CASetVersion]:
        return self._get(
            f"/ca-sets/{ca_set_id}/versions/{version}",
            "get CA set version",
            lambda r: _parse_version(r.json()),
        )

    # ── ActivationGateway ──────────────────────────────────────────

    def list_activations(self, ca_set_id: str) -> Result[list[Activation]]:
        return self._get(
            f"/ca-sets/{ca_set_id}/activations",
            "list CA set activations",
            lambda r: _parse_activations(r.json()),
        )

    def list_version_activations(self, ca_set_id: str, version: int) -> Result[list[Activation]]:
        return self._get(
            f"/ca-sets/{ca_set_id}/versions/{version}/activations",
            "list CA set version activations",
            lambda r: _parse_activations(r.json()),
        )

    def get_activation(self, ca_set_id: str, version: int, activation_id: int) -> Result[Activation]:
        return self._get(
            f"/ca-sets/{ca_set_id}/versions/{version}/activations/{activation_id}",
            "get CA set version activation",
            lambda r: _parse_activation(r.json(), _header_retry_after(r)),
        )

    def activate_version(self, ca_set_id: str, version: int, network: Network) -> Result[Activation]:
        return self._send(
            "POST",
            f"/ca-sets/{ca_set_id}/versions/{version}/activate",
            "activate CA set version",
            lambda r: _parse_activation(r.json(), _header_retry_after(r)),
            json={"network": network.value},
        )

    def deactivate_version(self, ca_set_id: str, version: int, network: Network) -> Result[Activation]:
        return self._send(
            "POST",
            f"/ca-sets/{ca_set_id}/versions/{version}/deactivate",
            "deactivate CA set version",
            lambda r: _parse_activation(r.json(), _header_retry_after(r)),
            json={"network": network.value},
        )

    # ── VersionWriter ──────────────────────────────────────────────

    def create_ca_set(self, name: str, description: str | None = None) -> Result[CASet]:
        return self._send(
            "POST",
            "/ca-sets",
            "create CA set",
            lambda r: _parse_ca_set(r.json()),
            json={"caSetName": name, "description": description},
        )

    def create_version(self, ca_set_id: str, edit: VersionEdit) -> Result[CASetVersion]:
        return self._send(
            "POST",
            f"/ca-sets/{ca_set_id}/versions",
            "create CA set version",
            lambda r: _parse_version(r.json()),
            json=_edit_body(edit),
        )

    def clone_version(self, ca_set_id: str, version: int, description: str | None = None) -> Result[CASetVersion]:
        return self._send(
            "POST",
            f"/ca-sets/{ca_set_id}/versions/{version}/clone",
            "clone CA set version",
            lambda r: _parse_version(r.json()),
            json={"description": description} if description is not None else None,
        )

    def update_version(self, ca_set_id: str, version: int, edit: VersionEdit) -> Result[CASetVersion]:
        return self._send(
            "PUT",
            f"/ca-sets/{ca_set_id}/versions/{version}",
            "update CA set version",
            lambda r: _parse_version(r.json()),
            json=_edit_body(edit),
        )

    def validate_certificates(
        self, certificates: tuple[CertificateInput, ...], allow_insecure_sha1: bool
    ) -> Result[int]:
        return self._send(
            "POST",
            "/certificates/validate",
            "validate certificates",
            lambda r: len(r.json().get("certificates", [])),
            json={
                "allowInsecureSha1": allow_insecure_sha1,
                "certificates": [_certificate_body(c) for c in certificates],
            },
        )

    # ── DeletionGateway ────────────────────────────────────────────

    def delete_ca_set(self, ca_set_id: str) -> Result[str]:
        return self._send("DELETE", f"/ca-sets/{ca_set_id}", "delete CA set", lambda _: ca_set_id)

    def get_deletion_status(self, ca_set_id: str) -> Result[CASetDeletionStatus]:
        return self._get(
            f"/ca-sets/{ca_set_id}/deletions",
            "get CA set deletion status",
            lambda r: _parse_deletion_status(ca_set_id, r.json(), _header_retry_after(r)),
        )

    # ── AssociationReader ──────────────────────────────────────────

    def list_associations(self, ca_set_id: str) -> Result[Associations]:
        return self._get(
            f"/ca-sets/{ca_set_id}/associations",
            "list CA set associations",
            lambda r: _parse_associations(r.json()),
        )

    # ── Transport ──────────────────────────────────────────────────

    def _get(
        self,
        path: str,
        operation: str,
        parse: Callable[[httpx.Response], T],
    ) -> Result[T]:
        """GET with tenacity retry — transport exceptions caught by from_computation."""
        return Result.from_computation(
            lambda: self._retrying(self._http.get, path),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"{operation} failed: service unreachable",
        ).flat_map(lambda response: _interpret(response, operation, parse))

    def _send(
        self,
        method: str,
        path: str,
        operation: str,
        parse: Callable[[httpx.Response], T],
        json: Any = None,
    ) -> Result[T]:
        """Single-shot mutating call; never retried."""
        return Result.from_computation(
            lambda: self._http.request(method, path, json=json),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"{operation} failed: service unreachable",
        ).flat_map(lambda response: _interpret(response, operation, parse))


def _interpret(response: httpx.Response, operation: str, parse: Callable[[httpx.Response], T]) -> Result[T]:
    """Map a response to Success(parsed body) or a Failure coded by HTTP status."""
    if response.is_error:
        return _failure_from(response, operation)
    log.debug("http.ok", operation=operation, status=response.status_code)
    return Result.from_computation(
        lambda: parse(response),
        ErrorCode.PROTOCOL_ERROR,
        f"{operation} failed: unexpected response body",
    )


def _failure_from(response: httpx.Response, operation: str) -> Result:
    problem = _problem_body(response)
    title = problem.get("title") or response.reason_phrase
    detail = problem.get("detail")
    message = f"{operation} failed: {response.status_code} {title}"
    if detail:
        message += f": {detail}"
    findings = tuple(
        ValidationFinding(
            pointer=str(item.get("pointer", "")),
            detail=str(item.get("detail") or item.get("title") or ""),
            index=_pointer_index(str(item.get("pointer", ""))),
        )
        for item in problem.get("errors") or []
        if isinstance(item, dict)
    )
    code = HttpStatusMapper.to_error_code(response.status_code)
    log.debug("http.error", operation=operation, status=response.status_code, code=code.value)
    return Result.failure(code, message, details=findings)


def _problem_body(response: httpx.Response) -> dict[str, Any]:
    """The problem+json body, or {} when the server sent something else."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _pointer_index(pointer: str) -> int | None:
    """"/certificates/3" (or "/certificates/3/certificatePem") → 3; anything else → None."""
    if not pointer.startswith(_CERTIFICATES_POINTER):
        return None
    head = pointer.removeprefix(_CERTIFICATES_POINTER).split("/", 1)[0]
    return int(head) if head.isdigit() else None


# ── Request bodies ─────────────────────────────────────────────────


def _certificate_body(certificate: CertificateInput) -> dict[str, Any]:
    body: dict[str, Any] = {"certificatePem": certificate.certificate_pem}
    if certificate.description is not None:
        body["description"] = certificate.description
    return body


def _edit_body(edit: VersionEdit) -> dict[str, Any]:
    body: dict[str, Any] = {
        "allowInsecureSha1": edit.allow_insecure_sha1,
        "certificates": [_certificate_body(c) for c in edit.certificates],
    }
    if edit.description is not None:
        body["description"] = edit.description
    return body


# ── Response mapping ───────────────────────────────────────────────


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _header_retry_after(response: httpx.Response) -> datetime | None:
    """Retry-After header, either delta-seconds or an HTTP-date."""
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    if raw.strip().isdigit():
        return datetime.now(UTC) + timedelta(seconds=int(raw.strip()))
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _parse_ca_set(data: dict[str, Any]) -> CASet:
    return CASet(
        ca_set_id=str(data["caSetId"]),
        name=data.get("caSetName", ""),
        account_id=data.get("accountId"),
        description=data.get("description"),
        created_by=data.get("createdBy"),
        created_date=_timestamp(data.get("createdDate")),
        latest_version=data.get("latestVersion"),
        staging_version=data.get("stagingVersion"),
        production_version=data.get("productionVersion"),
        status=CASetStatus(data.get("caSetStatus", CASetStatus.NOT_DELETED.value)),
    )


def _parse_certificate(data: dict[str, Any]) -> Certificate:
    return Certificate(
        certificate_pem=data["certificatePem"],
        description=data.get("description"),
        created_by=data.get("createdBy"),
        created_date=_timestamp(data.get("createdDate")),
        start_date=_timestamp(data.get("startDate")),
        end_date=_timestamp(data.get("endDate")),
        fingerprint=data.get("fingerprint"),
        issuer=data.get("issuer"),
        serial_number=data.get("serialNumber"),
        signature_algorithm=data.get("signatureAlgorithm"),
        subject=data.get("subject"),
    )


def _parse_version(data: dict[str, Any]) -> CASetVersion:
    return CASetVersion(
        ca_set_id=str(data["caSetId"]),
        version=int(data["version"]),
        allow_insecure_sha1=bool(data.get("allowInsecureSha1", False)),
        description=data.get("description"),
        staging_status=VersionStatus(data.get("stagingStatus", VersionStatus.INACTIVE.value)),
        production_status=VersionStatus(data.get("productionStatus", VersionStatus.INACTIVE.value)),
        certificates=tuple(_parse_certificate(c) for c in data.get("certificates", [])),
        created_by=data.get("createdBy"),
        created_date=_timestamp(data.get("createdDate")),
        modified_by=data.get("modifiedBy"),
        modified_date=_timestamp(data.get("modifiedDate")),
    )


def _parse_activation(data: dict[str, Any], header_retry_after: datetime | None = None) -> Activation:
    return Activation(
        activation_id=int(data["activationId"]),
        ca_set_id=str(data["caSetId"]),
        version=int(data["version"]),
        network=Network(data["network"]),
        activation_type=ActivationType(data["activationType"]),
        status=ActivationStatus(data["activationStatus"]),
        created_by=data.get("createdBy"),
        created_date=_timestamp(data.get("createdDate")),
        modified_by=data.get("modifiedBy"),
        modified_date=_timestamp(data.get("modifiedDate")),
        retry_after=_timestamp(data.get("retryAfter")) or header_retry_after,
    )


def _parse_activations(data: dict[str, Any]) -> list[Activation]:
    return [_parse_activation(item) for item in data.get("activations", [])]


def _parse_deletion_status(
    ca_set_id: str, data: dict[str, Any], header_retry_after: datetime | None = None
) -> CASetDeletionStatus:
    return CASetDeletionStatus(
        ca_set_id=str(data.get("caSetId", ca_set_id)),
        status=DeletionState(data["status"]),
        networks=tuple(
            NetworkDeletion(
                network=Network(item["network"]),
                status=DeletionState(item["status"]),
                percent_complete=item.get("percentComplete"),
            )
            for item in data.get("deletions", [])
        ),
        retry_after=_timestamp(data.get("retryAfter")) or header_retry_after,
        failure_reason=data.get("failureReason"),
    )


def _parse_associations(data: dict[str, Any]) -> Associations:
    body = data.get("associations", {})
    return Associations(
        properties=tuple(
            PropertyAssociation(
                property_id=str(p["propertyId"]),
                property_name=p.get("propertyName"),
                asset_id=p.get("assetId"),
                group_id=p.get("groupId"),
                hostnames=tuple(h["hostname"] for h in p.get("hostnames") or []),
            )
            for p in body.get("properties") or []
        ),
        enrollments=tuple(
            EnrollmentAssociation(
                enrollment_id=int(e["enrollmentId"]),
                cn=e.get("cn", ""),
                staging_slots=tuple(e.get("stagingSlots") or ()),
                production_slots=tuple(e.get("productionSlots") or ()),
            )
            for e in body.get("enrollments") or []
        ),
    )
