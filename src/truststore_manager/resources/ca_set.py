"""
Lifecycle hooks for the `ca_set` resource.

A CA set resource is the set itself plus the content of its latest version.
Edits go through the MutationGuard, so a version that was ever live is
cloned rather than rewritten; deletion goes through the DeletionCoordinator.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from railway import ErrorCode, LoggingExecutionContext, Result, ResultFailures

from truststore_manager.config import TimeoutSettings
from truststore_manager.domain.associations import AssociationGuard
from truststore_manager.domain.deletion import DeletionCoordinator
from truststore_manager.domain.models import CASet, CASetVersion, CertificateInput, VersionEdit
from truststore_manager.domain.mutation import MutationGuard, VersionEditOutcome
from truststore_manager.domain.ports import TrustStoreClient
from truststore_manager.resources.common import AttributeReader, HookResponse, isoformat

log = structlog.get_logger()

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-%.]+$")
PEM_PATTERN = re.compile(r"-----BEGIN CERTIFICATE-----\n[0-9A-Za-z+/=\s]+\n-----END CERTIFICATE-----")
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 255
MAX_CERTIFICATES = 300

# Attributes whose change means the CA set content changed; everything else is bookkeeping.
_CONTENT = ("name", "description", "allow_insecure_sha1", "version_description", "certificates")


@dataclass(frozen=True, slots=True)
class CASetConfig:
    """The user-controlled part of a ca_set resource."""

    name: str
    description: str | None
    edit: VersionEdit


def parse_config(bag: Mapping[str, Any] | None) -> Result[CASetConfig]:
    """Local checks: name rules, description lengths, 1 to 300 PEM certificates."""
    reader = AttributeReader(bag)
    name = reader.string("name")
    description = reader.string("description", required=False)
    version_description = reader.string("version_description", required=False)
    allow_insecure_sha1 = reader.boolean("allow_insecure_sha1")

    if name is not None:
        if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
            reader.complain(f"name: length must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH}")
        if not NAME_PATTERN.match(name):
            reader.complain(
                "name: allowed characters are alphanumerics (a-z, A-Z, 0-9), "
                "underscore (_), hyphen (-), percent (%) and period (.)"
            )
        if "..." in name:
            reader.complain("name: CA set name cannot contain three consecutive periods (...)")
    for key, value in (("description", description), ("version_description", version_description)):
        if value is not None and len(value) > MAX_DESCRIPTION_LENGTH:
            reader.complain(f"{key}: length must be at most {MAX_DESCRIPTION_LENGTH}")

    certificates = _read_certificates(reader)
    return reader.build(
        lambda: CASetConfig(
            name=name,
            description=description,
            edit=VersionEdit(
                certificates=certificates,
                allow_insecure_sha1=allow_insecure_sha1,
                description=version_description,
            ),
        )
    )


def _read_certificates(reader: AttributeReader) -> tuple[CertificateInput, ...]:
    items = reader.objects("certificates")
    if not 1 <= len(items) <= MAX_CERTIFICATES:
        reader.complain(f"certificates: between 1 and {MAX_CERTIFICATES} certificates are required")
    certificates: list[CertificateInput] = []
    for index, item in enumerate(items):
        pem = item.get("certificate_pem")
        note = item.get("description")
        if not isinstance(pem, str) or not PEM_PATTERN.search(pem):
            reader.complain(f"certificates[{index}].certificate_pem: Certificate must be in PEM format")
            continue
        if note is not None and (not isinstance(note, str) or len(note) > MAX_DESCRIPTION_LENGTH):
            reader.complain(f"certificates[{index}].description: expected a string of at most 255 characters")
            continue
        certificates.append(CertificateInput(certificate_pem=pem, description=note))
    return tuple(certificates)


def _ca_set_fields(ca_set: CASet) -> dict[str, Any]:
    return {
        "id": ca_set.ca_set_id,
        "name": ca_set.name,
        "account_id": ca_set.account_id,
        "description": ca_set.description,
        "created_by": ca_set.created_by,
        "created_date": isoformat(ca_set.created_date),
        "latest_version": ca_set.latest_version,
        "staging_version": ca_set.staging_version,
        "production_version": ca_set.production_version,
    }


def _version_fields(version: CASetVersion) -> dict[str, Any]:
    return {
        "allow_insecure_sha1": version.allow_insecure_sha1,
        "version_description": version.description,
        "version_created_by": version.created_by,
        "version_created_date": isoformat(version.created_date),
        "version_modified_by": version.modified_by,
        "version_modified_date": isoformat(version.modified_date),
        "certificates": [
            {
                "certificate_pem": c.certificate_pem,
                "description": c.description,
                "created_by": c.created_by,
                "created_date": isoformat(c.created_date),
                "start_date": isoformat(c.start_date),
                "end_date": isoformat(c.end_date),
                "fingerprint": c.fingerprint,
                "issuer": c.issuer,
                "serial_number": c.serial_number,
                "signature_algorithm": c.signature_algorithm,
                "subject": c.subject,
            }
            for c in version.certificates
        ],
    }


def only_timeouts_changed(state: Mapping[str, Any], plan: Mapping[str, Any]) -> bool:
    same_content = all(state.get(key) == plan.get(key) for key in _CONTENT)
    return same_content and state.get("timeouts") != plan.get("timeouts")


class CASetResource:
    """Host hooks for a CA set and the content of its latest version."""

    def __init__(
        self,
        client: TrustStoreClient,
        mutation: MutationGuard,
        deletion: DeletionCoordinator,
        guard: AssociationGuard,
        timeouts: TimeoutSettings,
    ) -> None:
        self._client = client
        self._mutation = mutation
        self._deletion = deletion
        self._guard = guard
        self._timeouts = timeouts

    # ── Validation ─────────────────────────────────────────────────

    def validate(self, config: Mapping[str, Any]) -> Result[HookResponse]:
        """Local attribute checks, then the remote certificate validator."""
        return self._validated(config).map(lambda _: HookResponse(dict(config)))

    def _validated(self, bag: Mapping[str, Any]) -> Result[CASetConfig]:
        return parse_config(bag).flat_map(
            lambda parsed: self._client.validate_certificates(
                parsed.edit.certificates, parsed.edit.allow_insecure_sha1
            )
            .map_failure(lambda err: err.with_message(f"certificates are invalid: {err.message}"))
            .map(lambda _: parsed)
        )

    # ── Lifecycle hooks ────────────────────────────────────────────

    def create(self, plan: Mapping[str, Any]) -> Result[HookResponse]:
        return LoggingExecutionContext(operation="ca_set.create").execute(
            lambda: self._validated(plan).flat_map(lambda parsed: self._create(plan, parsed))
        )

    def _create(self, plan: Mapping[str, Any], parsed: CASetConfig) -> Result[HookResponse]:
        created = self._client.create_ca_set(parsed.name, parsed.description).map_failure(
            lambda err: err.with_message(f"create ca set failed: {err.message}")
        )
        if created.is_failure():
            return Result.failure_from(created.error())
        ca_set_id = created.value().ca_set_id
        log.info("ca_set.created", ca_set_id=ca_set_id)

        # The set has no version until the first one is created; re-read it afterwards.
        return (
            self._client.create_version(ca_set_id, parsed.edit)
            .map_failure(lambda err: err.with_message(f"create ca set version failed: {err.message}"))
            .peek(lambda version: log.info("ca_set.version_created", ca_set_id=ca_set_id, version=version.version))
            .flat_map(
                lambda version: self._client.get_ca_set(ca_set_id)
                .map_failure(lambda err: err.with_message(f"get ca set failed: {err.message}"))
                .map(lambda ca_set: HookResponse({**plan, **_ca_set_fields(ca_set), **_version_fields(version)}))
            )
        )

    def read(self, state: Mapping[str, Any]) -> Result[HookResponse]:
        reader = AttributeReader(state)
        ca_set_id = reader.string("id")
        return reader.build(lambda: ca_set_id).flat_map(lambda ca_set_id: self._read(state, ca_set_id))

    def _read(self, state: Mapping[str, Any], ca_set_id: str) -> Result[HookResponse]:
        fetched = self._client.get_ca_set(ca_set_id)
        if fetched.has_code(ErrorCode.NOT_FOUND):
            return self._removed(
                ca_set_id,
                f"CA set with ID {ca_set_id} is not found. It may have been deleted outside of the host.",
            )
        if fetched.is_failure():
            return Result.failure_from(fetched.error().with_message(f"read ca set error: {fetched.error().message}"))

        ca_set = fetched.value()
        if ca_set.latest_version is None:
            return self._removed(
                ca_set_id,
                f"CA set with ID {ca_set_id} has no version. It may have been deleted outside of the host.",
            )

        version = self._client.get_ca_set_version(ca_set_id, ca_set.latest_version)
        if version.has_code(ErrorCode.NOT_FOUND):
            return self._removed(
                ca_set_id,
                f"CA set with ID {ca_set_id} has no version. It may have been deleted outside of the host.",
            )
        return version.map_failure(lambda err: err.with_message(f"read ca set error: {err.message}")).map(
            lambda v: HookResponse({**state, **_ca_set_fields(ca_set), **_version_fields(v)})
        )

    def _removed(self, ca_set_id: str, warning: str) -> Result[HookResponse]:
        log.warning("ca_set.removed_from_state", ca_set_id=ca_set_id)
        return Result.success(HookResponse(None, (warning,)))

    def update(self, plan: Mapping[str, Any], state: Mapping[str, Any]) -> Result[HookResponse]:
        if only_timeouts_changed(state, plan):
            updated = dict(state)
            updated["timeouts"] = plan.get("timeouts")
            return Result.success(HookResponse(updated))

        reader = AttributeReader(state)
        ca_set_id = reader.string("id")
        latest = reader.integer("latest_version")
        return LoggingExecutionContext(operation="ca_set.update", ca_set_id=ca_set_id).execute(
            lambda: reader.build(lambda: (ca_set_id, latest))
            .flat_map(lambda _: self._validated(plan))
            .flat_map(lambda parsed: self._mutation.apply_edit(ca_set_id, latest, parsed.edit))
            .map(lambda outcome: HookResponse(self._updated_state(plan, state, outcome)))
        )

    def _updated_state(
        self, plan: Mapping[str, Any], state: Mapping[str, Any], outcome: VersionEditOutcome
    ) -> dict[str, Any]:
        updated = {**plan, **_version_fields(outcome.version)}
        updated["id"] = state.get("id")
        updated["latest_version"] = outcome.version.version
        # Editing never changes what is live; carry the network pointers over.
        updated["staging_version"] = state.get("staging_version")
        updated["production_version"] = state.get("production_version")
        return updated

    def delete(self, state: Mapping[str, Any], cancel: threading.Event | None = None) -> Result[HookResponse]:
        reader = AttributeReader(state)
        ca_set_id = reader.string("id")
        timeout = reader.timeout("delete", self._timeouts.delete)
        return LoggingExecutionContext(operation="ca_set.delete", ca_set_id=ca_set_id).execute(
            lambda: reader.build(lambda: ca_set_id)
            .flat_map(lambda ca_set_id: self._deletion.delete(ca_set_id, timeout, cancel))
            .map_failure(lambda err: err.with_message(f"delete ca set resource failed: {err.message}"))
            .map(lambda _: HookResponse(None))
        )

    def import_state(self, import_id: str) -> Result[HookResponse]:
        if not isinstance(import_id, str) or not import_id:
            return ResultFailures.validation_error("Import ID cannot be empty")
        return (
            self._client.get_ca_set(import_id)
            .map_failure(lambda err: err.with_message(f"import ca set resource failed: {err.message}"))
            .flat_map(lambda ca_set: self._importable(ca_set))
        )

    def _importable(self, ca_set: CASet) -> Result[HookResponse]:
        if ca_set.latest_version is None:
            return ResultFailures.business_rule_error(
                "It is not possible to import ca set without version: the CA set does not have any version"
            )
        log.info("ca_set.imported", ca_set_id=ca_set.ca_set_id, latest_version=ca_set.latest_version)
        return Result.success(
            HookResponse(
                {
                    "id": ca_set.ca_set_id,
                    "latest_version": ca_set.latest_version,
                    "certificates": None,
                    "timeouts": None,
                }
            )
        )

    def plan_destroy(self, state: Mapping[str, Any]) -> Result[HookResponse]:
        """Warn at plan time when the CA set is still referenced; absence is silent."""
        reader = AttributeReader(state)
        ca_set_id = reader.string("id")
        return (
            reader.build(lambda: ca_set_id)
            .flat_map(self._guard.check_not_in_use)
            .map(lambda _: HookResponse(dict(state)))
            .recover_if(ErrorCode.NOT_FOUND, lambda _: Result.success(HookResponse(dict(state))))
            .recover_if(
                ErrorCode.BUSINESS_RULE_ERROR,
                lambda err: Result.success(
                    HookResponse(dict(state), (f"CA set is in use and cannot be deleted: {err.message}",))
                ),
            )
        )
