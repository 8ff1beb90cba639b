"""
Network Value Objects

Architectural Intent:
- Immutable descriptions of the networking a cluster's node pools attach to
- ClusterNetwork is read from the AWS cluster stack outputs
- NetworkValues is read from an Oracle VCN; Placement is the per-pool
  subnet allocation computed by the quantity distributor
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ClusterNetwork:
    vpc_id: str
    subnet_ids: tuple[str, ...]
    security_group_id: str


@dataclass(frozen=True)
class NetworkValues:
    vcn_id: str
    lb_subnet_ids: tuple[str, ...] = ()
    worker_subnet_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Placement:
    quantity_per_subnet: int
    subnet_ids: tuple[str, ...]

    @property
    def total(self) -> int:
        return self.quantity_per_subnet * len(self.subnet_ids)
