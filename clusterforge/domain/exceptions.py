"""
Domain Exceptions

Architectural Intent:
- Single error taxonomy shared by the domain services, the action pipeline
  and the lifecycle controllers
- Caller input errors (validation, configuration) are raised before any
  infrastructure is touched and are never retried
- Step and rollback failures carry the failing step name and the underlying
  cause so callers can present partial-progress diagnostics
"""

from __future__ import annotations
from enum import Enum
from typing import Optional


class ClusterforgeError(Exception):
    """Base class for all clusterforge errors."""


class ValidationReason(Enum):
    MISSING_INSTANCE_TYPE = "instance type is missing"
    MISSING_IMAGE = "image is missing"
    INVALID_SCALING_BOUNDS = "max count is lower than min count"
    DUPLICATE_NODE_POOL = "node pool name is not unique"
    CLOUD_MISMATCH = "request cloud does not match the stored cluster"


class ValidationError(ClusterforgeError):
    """Caller supplied an invalid node pool or request."""

    def __init__(self, reason: ValidationReason, pool_name: str = "") -> None:
        self.reason = reason
        self.pool_name = pool_name
        where = f" for node pool {pool_name!r}" if pool_name else ""
        super().__init__(f"{reason.value}{where}")


class ConfigurationError(ClusterforgeError):
    """Topology or environment cannot satisfy the request (e.g. too few subnets)."""


class StepTimeoutError(ClusterforgeError):
    def __init__(self, step_name: str, timeout: float) -> None:
        self.step_name = step_name
        self.timeout = timeout
        super().__init__(f"Step {step_name} timed out after {timeout}s")


class StepFailure(ClusterforgeError):
    """A single step's forward or compensating operation failed."""

    def __init__(self, step_name: str, cause: BaseException) -> None:
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Step {step_name} failed: {cause}")


class RollbackPartialFailure(ClusterforgeError):
    """One or more compensating operations failed during rollback."""

    def __init__(
        self, failures: list[StepFailure], cause: Optional[StepFailure] = None
    ) -> None:
        self.failures = list(failures)
        self.cause = cause
        names = ", ".join(f.step_name for f in self.failures)
        message = f"Rollback incomplete, compensation failed for: {names}"
        if cause is not None:
            message += f" (after {cause})"
        super().__init__(message)


class NotReadyError(ClusterforgeError):
    """The cluster exists but is not in an active state."""

    def __init__(self, cluster_name: str, state: str = "") -> None:
        self.cluster_name = cluster_name
        self.state = state
        detail = f" (state: {state})" if state else ""
        super().__init__(f"Cluster {cluster_name} is not ready{detail}")


class InvalidTransitionError(ClusterforgeError, ValueError):
    pass


class SecretNotFoundError(ClusterforgeError):
    def __init__(self, organization_id: int, secret_id: str) -> None:
        self.organization_id = organization_id
        self.secret_id = secret_id
        super().__init__(
            f"Secret {secret_id} not found for organization {organization_id}"
        )


class ClusterNotFoundError(ClusterforgeError):
    pass
