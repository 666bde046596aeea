"""
Association Guard — is a CA set still referenced by properties or enrollments?

Destructive operations (CA set deletion, deactivating a live version) must
not proceed while anything references the set. The guard only reads; it
never changes associations.
"""

from __future__ import annotations

import structlog
from railway import Result, ResultFailures

from truststore_manager.domain.models import Associations
from truststore_manager.domain.ports import AssociationReader

log = structlog.get_logger()


def describe_associations(associations: Associations) -> str:
    """
    Human-readable listing of what references the CA set.

    Enrollments win when both kinds are present, since they are the
    references an operator has to detach first.
    """
    if associations.enrollments:
        items = ", ".join(f"{e.cn} ({e.enrollment_id})" for e in associations.enrollments)
        return f"CA set is in use by {len(associations.enrollments)} enrollments: {items}"
    items = ", ".join(f"{p.property_name or ''} ({p.property_id})" for p in associations.properties)
    return f"CA set is in use by {len(associations.properties)} properties: {items}"


class AssociationGuard:
    """Blocks destructive operations while the CA set is in use."""

    def __init__(self, client: AssociationReader) -> None:
        self._client = client

    def check_not_in_use(self, ca_set_id: str) -> Result[Associations]:
        """
        Succeed with the (empty) associations when the CA set is unreferenced.

        Returns Failure(BUSINESS_RULE_ERROR) carrying the listing when the set
        is in use. Failure(NOT_FOUND) from the listing call is passed through
        untouched so the caller can treat absence as "already gone".
        """
        return self._client.list_associations(ca_set_id).flat_map(
            lambda associations: self._judge(ca_set_id, associations)
        )

    def _judge(self, ca_set_id: str, associations: Associations) -> Result[Associations]:
        if not associations.in_use:
            return Result.success(associations)
        log.warning(
            "associations.in_use",
            ca_set_id=ca_set_id,
            enrollments=len(associations.enrollments),
            properties=len(associations.properties),
        )
        return ResultFailures.business_rule_error(describe_associations(associations))
