"""
Application entry point — wires dependencies and runs one host hook.

Composition root: creates the concrete HTTP client, injects it into the
guards, orchestrator, reconciler and coordinator, and hands those to the
two resources.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Build the HTTP client and the domain components
  4. Read one JSON hook request from stdin, dispatch it, and write
     one JSON response to stdout
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from railway import ErrorResponse, Result, ResultFailures

from truststore_manager import __version__
from truststore_manager.adapters.http_client import HttpTrustStoreClient
from truststore_manager.config import AppSettings
from truststore_manager.domain.activation import ActivationOrchestrator
from truststore_manager.domain.associations import AssociationGuard
from truststore_manager.domain.deletion import DeletionCoordinator
from truststore_manager.domain.drift import DriftReconciler
from truststore_manager.domain.mutation import MutationGuard
from truststore_manager.domain.polling import SystemClock
from truststore_manager.resources.ca_set import CASetResource
from truststore_manager.resources.ca_set_activation import CASetActivationResource
from truststore_manager.resources.common import HookResponse


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Logs go to stderr: stdout carries the hook response and nothing else.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@dataclass(frozen=True, slots=True)
class Resources:
    client: HttpTrustStoreClient
    ca_set: CASetResource
    ca_set_activation: CASetActivationResource


def create_resources(settings: AppSettings) -> Resources:
    """
    Instantiate the HTTP client and every component from application settings.

    This is the ONLY place where concrete classes are created.
    """
    token = settings.api.access_token
    client = HttpTrustStoreClient(
        base_url=settings.api.base_url,
        timeout=settings.api.http_timeout_seconds,
        max_attempts=settings.api.max_attempts,
        access_token=token.get_secret_value() if token is not None else None,
    )
    clock = SystemClock()
    guard = AssociationGuard(client)
    orchestrator = ActivationOrchestrator(
        client,
        clock=clock,
        poll_interval=settings.polling.activation_interval_seconds,
        guard=guard,
    )
    deletion = DeletionCoordinator(
        client,
        guard,
        clock=clock,
        interval=settings.polling.deletion_interval_seconds,
        initial_delay=settings.polling.deletion_initial_delay_seconds,
    )
    return Resources(
        client=client,
        ca_set=CASetResource(client, MutationGuard(client, client), deletion, guard, settings.timeouts),
        ca_set_activation=CASetActivationResource(
            orchestrator, DriftReconciler(client, client), client, settings.timeouts
        ),
    )


def _dispatch(resources: Resources, request: Mapping[str, Any]) -> Result[HookResponse]:
    resource_name = request.get("resource")
    operation = request.get("operation")
    plan = request.get("plan") or {}
    state = request.get("state") or {}
    import_id = request.get("id", "")

    if not isinstance(plan, Mapping) or not isinstance(state, Mapping):
        return ResultFailures.validation_error("plan and state must be JSON objects")

    match resource_name:
        case "ca_set":
            resource = resources.ca_set
        case "ca_set_activation":
            resource = resources.ca_set_activation
        case _:
            return ResultFailures.validation_error(f"unknown resource: {resource_name!r}")

    match operation:
        case "create":
            return resource.create(plan)
        case "read" if resource_name == "ca_set_activation":
            return resources.ca_set_activation.read(state, superseded=request.get("superseded") is True)
        case "read":
            return resource.read(state)
        case "update":
            return resource.update(plan, state)
        case "delete":
            return resource.delete(state)
        case "import":
            return resource.import_state(import_id)
        case "plan_destroy":
            return resource.plan_destroy(state)
        case "validate" if resource_name == "ca_set":
            return resources.ca_set.validate(plan)
        case _:
            return ResultFailures.validation_error(f"unknown operation for {resource_name}: {operation!r}")


def handle_request(resources: Resources, request: Mapping[str, Any]) -> dict[str, Any]:
    """Run one hook request and render its outcome as a JSON-ready dict."""
    if not isinstance(request, Mapping):
        result: Result[HookResponse] = ResultFailures.validation_error("request must be a JSON object")
    else:
        result = _dispatch(resources, request)
    return result.either(
        lambda response: {"status": "ok", **response.to_dict()},
        lambda err: {"status": "error", **ErrorResponse.from_failure(err).to_dict()},
    )


def main() -> None:
    """Load settings, run the hook read from stdin, print its response."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info("app.starting", version=__version__, base_url=settings.api.base_url)

    try:
        request = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        log.error("app.bad_request", error=str(e))
        print(json.dumps({"status": "error", "error_code": "VALIDATION_ERROR", "message": str(e)}))  # noqa: T201
        sys.exit(2)

    resources = create_resources(settings)
    try:
        response = handle_request(resources, request)
    finally:
        resources.client.close()

    print(json.dumps(response))  # noqa: T201
    if response["status"] != "ok":
        sys.exit(1)


if __name__ == "__main__":
    main()
