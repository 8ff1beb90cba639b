from dataclasses import dataclass


@dataclass(frozen=True)
class ClusterDescription:
    """
    Value Object for the provider's live view of a cluster's control plane.
    """
    name: str
    state: str
    active: bool
    version: str = ""
    endpoint: str = ""
