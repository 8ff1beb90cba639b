"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the clusterforge application
- Single place where all adapters and lifecycle controllers are wired
- No adapter instantiation should occur outside this module (except tests)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from a loaded config
- Collaborators can be passed in to replace the simulated cloud backends or
  the secret store
"""

import logging
from dataclasses import dataclass
from typing import Optional

from clusterforge.application.orchestration.action_pipeline import ActionPipeline
from clusterforge.application.use_cases.cluster_lifecycle import ClusterLifecycleController
from clusterforge.application.use_cases.eks_lifecycle import EksLifecycleController
from clusterforge.application.use_cases.oke_lifecycle import OkeLifecycleController
from clusterforge.infrastructure.adapters.aws_adapter import AwsAdapter
from clusterforge.infrastructure.adapters.oracle_adapter import OracleAdapter
from clusterforge.infrastructure.config import ClusterforgeConfig, load_config
from clusterforge.infrastructure.event_bus import EventBus
from clusterforge.infrastructure.logging import configure_logging
from clusterforge.infrastructure.repositories.sqlite_repository import SQLiteClusterRepository
from clusterforge.infrastructure.secrets.memory_secret_store import InMemorySecretStore
from clusterforge.infrastructure.telemetry.otel_exporter import OTELExporter, create_exporter


@dataclass
class ClusterforgeContainer:
    """DI container holding all wired dependencies."""

    config: ClusterforgeConfig
    repository: SQLiteClusterRepository
    secret_store: InMemorySecretStore
    event_bus: EventBus
    aws_adapter: AwsAdapter
    oracle_adapter: OracleAdapter
    telemetry: OTELExporter
    eks: EksLifecycleController
    oke: OkeLifecycleController

    def controller_for(self, cloud: str) -> ClusterLifecycleController:
        for controller in (self.eks, self.oke):
            if controller.cloud == cloud:
                return controller
        raise ValueError(f"Unsupported cloud: {cloud}")

    def close(self) -> None:
        self.telemetry.flush()
        self.repository.close()


def create_container(
    config: Optional[ClusterforgeConfig] = None,
    secret_store: Optional[InMemorySecretStore] = None,
    aws_adapter: Optional[AwsAdapter] = None,
    oracle_adapter: Optional[OracleAdapter] = None,
) -> ClusterforgeContainer:
    """Create and wire all dependencies."""
    config = config or load_config()
    configure_logging(config.log_level, json_format=config.log_json)

    repository = SQLiteClusterRepository(config.database.path)
    repository.connect()
    secret_store = secret_store or InMemorySecretStore()
    event_bus = EventBus()
    aws_adapter = aws_adapter or AwsAdapter()
    oracle_adapter = oracle_adapter or OracleAdapter()
    telemetry = create_exporter(
        endpoint=config.telemetry.endpoint,
        service_name=config.telemetry.service_name,
        insecure=config.telemetry.insecure,
    )

    def pipeline(name: str) -> ActionPipeline:
        return ActionPipeline(
            logger=logging.getLogger(f"clusterforge.pipeline.{name}"),
            step_timeout=config.pipeline.step_timeout_seconds,
            telemetry=telemetry,
        )

    eks = EksLifecycleController(
        aws_adapter,
        secret_store,
        repository,
        config=config.eks,
        pipeline=pipeline("aws"),
        event_bus=event_bus,
        telemetry=telemetry,
    )
    oke = OkeLifecycleController(
        oracle_adapter,
        secret_store,
        repository,
        config=config.oke,
        pipeline=pipeline("oracle"),
        event_bus=event_bus,
        telemetry=telemetry,
    )

    return ClusterforgeContainer(
        config=config,
        repository=repository,
        secret_store=secret_store,
        event_bus=event_bus,
        aws_adapter=aws_adapter,
        oracle_adapter=oracle_adapter,
        telemetry=telemetry,
        eks=eks,
        oke=oke,
    )
