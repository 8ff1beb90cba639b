"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from clusterforge.domain.ports.secret_store_port import SecretStorePort
from clusterforge.domain.ports.cluster_repository_port import ClusterRepositoryPort
from clusterforge.domain.ports.aws_provisioning_port import (
    AwsProvisioningPort,
    AwsSessionPort,
)
from clusterforge.domain.ports.oracle_provisioning_port import (
    OracleProvisioningPort,
    OracleSessionPort,
)
from clusterforge.domain.ports.event_bus_port import EventBusPort
from clusterforge.domain.ports.telemetry_port import TelemetryPort

__all__ = [
    "SecretStorePort",
    "ClusterRepositoryPort",
    "AwsProvisioningPort",
    "AwsSessionPort",
    "OracleProvisioningPort",
    "OracleSessionPort",
    "EventBusPort",
    "TelemetryPort",
]
