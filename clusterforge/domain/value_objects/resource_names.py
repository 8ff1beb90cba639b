from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceNames:
    """
    Value Object deriving cloud resource names from a cluster name.
    """
    cluster_name: str

    def __post_init__(self):
        if not self.cluster_name:
            raise ValueError("Cluster name cannot be empty")

    @property
    def cluster_stack(self) -> str:
        return f"{self.cluster_name}-pipeline-eks"

    @property
    def iam_role(self) -> str:
        return f"{self.cluster_name}-pipeline-eks"

    @property
    def ssh_key(self) -> str:
        return f"ssh-key-for-cluster-{self.cluster_name}"

    @property
    def vcn(self) -> str:
        return f"p-{self.cluster_name}"

    def node_pool_stack(self, pool_name: str) -> str:
        return f"{self.cluster_name}-pipeline-eks-nodepool-{pool_name}"
