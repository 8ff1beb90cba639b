"""
AWS EKS Provisioning Adapter

Architectural Intent:
- Implements AwsProvisioningPort for EKS clusters backed by CloudFormation
  stacks, IAM and EC2 key pairs
- Simulates boto3 SDK call patterns without importing the real SDK, enabling
  integration testing and local development with zero cloud credentials
- When the real boto3 library is available, replace SimulatedAwsCloud with
  boto3 clients ("cloudformation", "eks", "iam", "ec2", "autoscaling"); the
  session's Step factories remain stable

Design Decisions:
- SimulatedAwsCloud plays the role of the AWS backend: every call returns a
  dict shaped like the corresponding boto3 response and is logged at DEBUG
- Faults can be injected per operation and resource name so tests can drive
  the rollback and partial-failure paths
- Every Step is idempotent: creating something that exists is reused,
  deleting something that is already gone succeeds
- Compensations only undo what the forward operation itself created

Simulated region defaults: us-east-1
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from clusterforge.domain.entities.node_pool import LiveAttributes, NodePoolReconciled
from clusterforge.domain.exceptions import ConfigurationError
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.network import ClusterNetwork
from clusterforge.domain.value_objects.step import Step, StepContext

logger = logging.getLogger(__name__)

ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"


class SimulatedAwsError(Exception):
    """Mirrors botocore's ClientError: an error code plus a message."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"{code}: {message}")


def _response(**payload: Any) -> dict:
    payload["ResponseMetadata"] = {
        "RequestId": str(uuid.uuid4()),
        "HTTPStatusCode": 200,
        "HTTPHeaders": {},
    }
    return payload


def _params(parameters: dict[str, str]) -> list[dict]:
    return [{"ParameterKey": k, "ParameterValue": v} for k, v in parameters.items()]


# ---------------------------------------------------------------------------
# Simulated backend
# ---------------------------------------------------------------------------

class SimulatedAwsCloud:
    """
    In-memory AWS account.

    The registries hold the raw resource dicts the boto3 describe calls
    return. `calls` is an audit log of "operation:target" strings in call
    order.
    """

    def __init__(self, account_id: str = "123456789012", latency: float = 0.0) -> None:
        self.account_id = account_id
        self.latency = latency
        self.roles: dict[str, dict] = {}
        self.stacks: dict[str, dict] = {}
        self.key_pairs: dict[str, dict] = {}
        self.clusters: dict[str, dict] = {}
        self.users: dict[str, dict] = {}
        self.auto_scaling_groups: dict[str, dict] = {}
        self.calls: list[str] = []
        self._faults: dict[tuple[str, str], Exception] = {}

    def fail_on(self, operation: str, target: str = "*", error: Optional[Exception] = None) -> None:
        """Make the next matching calls raise `error` until cleared."""
        self._faults[(operation, target)] = error or SimulatedAwsError(
            "InternalFailure", f"injected failure in {operation} for {target}"
        )

    def clear_faults(self) -> None:
        self._faults.clear()

    async def _call(self, operation: str, target: str) -> None:
        self.calls.append(f"{operation}:{target}")
        logger.debug("AWS %s (%s)", operation, target)
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        fault = self._faults.get((operation, target)) or self._faults.get((operation, "*"))
        if fault is not None:
            raise fault

    # -- IAM -----------------------------------------------------------------

    async def get_role(self, role_name: str) -> Optional[dict]:
        await self._call("get_role", role_name)
        role = self.roles.get(role_name)
        return _response(Role=role) if role else None

    async def create_role(self, role_name: str) -> dict:
        await self._call("create_role", role_name)
        role = {
            "RoleName": role_name,
            "RoleId": "AROA" + uuid.uuid4().hex[:16].upper(),
            "Arn": f"arn:aws:iam::{self.account_id}:role/{role_name}",
        }
        self.roles[role_name] = role
        return _response(Role=role)

    async def delete_role(self, role_name: str) -> bool:
        await self._call("delete_role", role_name)
        return self.roles.pop(role_name, None) is not None

    async def create_user(self, user_name: str) -> dict:
        await self._call("create_user", user_name)
        access_key = {
            "UserName": user_name,
            "AccessKeyId": "AKIA" + uuid.uuid4().hex[:16].upper(),
            "Status": "Active",
        }
        self.users[user_name] = {"UserName": user_name, "AccessKeys": [access_key]}
        return _response(AccessKey=access_key)

    async def delete_user(self, user_name: str) -> bool:
        await self._call("delete_user", user_name)
        return self.users.pop(user_name, None) is not None

    # -- EC2 -----------------------------------------------------------------

    async def import_key_pair(self, key_name: str, public_key: str) -> dict:
        await self._call("import_key_pair", key_name)
        if key_name in self.key_pairs:
            raise SimulatedAwsError("InvalidKeyPair.Duplicate", f"key pair {key_name} exists")
        key = {"KeyName": key_name, "KeyFingerprint": uuid.uuid4().hex, "PublicKey": public_key}
        self.key_pairs[key_name] = key
        return _response(**{k: v for k, v in key.items() if k != "PublicKey"})

    async def delete_key_pair(self, key_name: str) -> bool:
        await self._call("delete_key_pair", key_name)
        return self.key_pairs.pop(key_name, None) is not None

    # -- CloudFormation --------------------------------------------------------

    async def create_stack(
        self, stack_name: str, parameters: dict[str, str], outputs: dict[str, str]
    ) -> dict:
        await self._call("create_stack", stack_name)
        if stack_name in self.stacks:
            raise SimulatedAwsError("AlreadyExistsException", f"Stack [{stack_name}] already exists")
        stack_id = f"arn:aws:cloudformation:stack/{stack_name}/{uuid.uuid4()}"
        self.stacks[stack_name] = {
            "StackId": stack_id,
            "StackName": stack_name,
            "StackStatus": "CREATE_COMPLETE",
            "Parameters": _params(parameters),
            "Outputs": [{"OutputKey": k, "OutputValue": v} for k, v in outputs.items()],
        }
        return _response(StackId=stack_id)

    async def update_stack(self, stack_name: str, parameters: dict[str, str]) -> dict:
        await self._call("update_stack", stack_name)
        stack = self.stacks.get(stack_name)
        if stack is None:
            raise SimulatedAwsError("ValidationError", f"Stack [{stack_name}] does not exist")
        stack["Parameters"] = _params(parameters)
        stack["StackStatus"] = "UPDATE_COMPLETE"
        return _response(StackId=stack["StackId"])

    async def describe_stack(self, stack_name: str) -> Optional[dict]:
        await self._call("describe_stacks", stack_name)
        return self.stacks.get(stack_name)

    async def delete_stack(self, stack_name: str) -> bool:
        await self._call("delete_stack", stack_name)
        self.auto_scaling_groups.pop(stack_name, None)
        return self.stacks.pop(stack_name, None) is not None

    # -- EKS -----------------------------------------------------------------

    async def create_cluster(
        self, name: str, version: str, role_arn: str, vpc_config: dict
    ) -> dict:
        await self._call("create_cluster", name)
        if name in self.clusters:
            raise SimulatedAwsError("ResourceInUseException", f"Cluster already exists: {name}")
        cluster = {
            "name": name,
            "arn": f"arn:aws:eks:cluster/{name}",
            "version": version,
            "roleArn": role_arn,
            "resourcesVpcConfig": vpc_config,
            "status": "ACTIVE",
            "endpoint": f"https://{uuid.uuid4().hex[:32].upper()}.eks.amazonaws.com",
            "certificateAuthority": {"data": uuid.uuid4().hex},
        }
        self.clusters[name] = cluster
        return _response(cluster=cluster)

    async def describe_cluster(self, name: str) -> Optional[dict]:
        await self._call("describe_cluster", name)
        return self.clusters.get(name)

    async def delete_cluster(self, name: str) -> bool:
        await self._call("delete_cluster", name)
        return self.clusters.pop(name, None) is not None

    # -- Auto Scaling ----------------------------------------------------------

    async def describe_auto_scaling_group(self, stack_name: str) -> Optional[dict]:
        await self._call("describe_auto_scaling_groups", stack_name)
        return self.auto_scaling_groups.get(stack_name)


# ---------------------------------------------------------------------------
# Session: Step factories bound to one set of credentials and one region
# ---------------------------------------------------------------------------

class AwsSession:
    def __init__(self, cloud: SimulatedAwsCloud, region: str, access_key_id: str) -> None:
        self.cloud = cloud
        self.region = region
        self.access_key_id = access_key_id

    # -- Create ----------------------------------------------------------------

    def ensure_iam_role(self, role_name: str) -> Step:
        created: dict[str, bool] = {}

        async def execute(ctx: StepContext) -> None:
            existing = await self.cloud.get_role(role_name)
            if existing is not None:
                logger.info("IAM role %s already exists, reusing it", role_name)
                role = existing["Role"]
            else:
                role = (await self.cloud.create_role(role_name))["Role"]
                created[role_name] = True
            ctx["role_arn"] = role["Arn"]

        async def compensate(ctx: StepContext) -> None:
            if created.pop(role_name, False):
                await self.cloud.delete_role(role_name)

        return Step(name=f"ensure-iam-role-{role_name}", execute=execute, compensate=compensate)

    def create_vpc(self, stack_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            subnets = [f"subnet-{uuid.uuid4().hex[:8]}" for _ in range(3)]
            vpc_id = f"vpc-{uuid.uuid4().hex[:8]}"
            security_group = f"sg-{uuid.uuid4().hex[:8]}"
            await self.cloud.create_stack(
                stack_name,
                parameters={"VpcBlock": "192.168.0.0/16"},
                outputs={
                    "VpcId": vpc_id,
                    "SubnetIds": ",".join(subnets),
                    "SecurityGroups": security_group,
                },
            )
            ctx["network"] = ClusterNetwork(vpc_id, tuple(subnets), security_group)

        async def compensate(ctx: StepContext) -> None:
            await self.cloud.delete_stack(stack_name)

        return Step(name=f"create-vpc-{stack_name}", execute=execute, compensate=compensate)

    def upload_ssh_key(self, key_name: str, public_key: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            await self.cloud.import_key_pair(key_name, public_key)

        async def compensate(ctx: StepContext) -> None:
            await self.cloud.delete_key_pair(key_name)

        return Step(name=f"upload-ssh-key-{key_name}", execute=execute, compensate=compensate)

    def generate_vpc_config(self, stack_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            outputs = await self.cluster_stack_outputs(stack_name)
            if not outputs:
                raise ConfigurationError(f"Stack {stack_name} has no outputs")
            ctx["vpc_config"] = {
                "securityGroupIds": [outputs["SecurityGroups"]],
                "subnetIds": outputs["SubnetIds"].split(","),
            }

        return Step(name=f"generate-vpc-config-{stack_name}", execute=execute)

    def create_eks_cluster(self, cluster_name: str, version: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            await self.cloud.create_cluster(
                cluster_name, version, ctx["role_arn"], ctx["vpc_config"]
            )

        async def compensate(ctx: StepContext) -> None:
            await self.cloud.delete_cluster(cluster_name)

        return Step(name=f"create-eks-cluster-{cluster_name}", execute=execute, compensate=compensate)

    def load_eks_settings(self, cluster_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            cluster = await self.cloud.describe_cluster(cluster_name)
            if cluster is None or cluster["status"] != "ACTIVE":
                raise SimulatedAwsError(
                    "ResourceNotFoundException", f"No active cluster found: {cluster_name}"
                )
            ctx["api_endpoint"] = cluster["endpoint"]
            ctx["certificate_authority_data"] = cluster["certificateAuthority"]["data"]

        return Step(name=f"load-eks-settings-{cluster_name}", execute=execute)

    def create_iam_user(self, user_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            response = await self.cloud.create_user(user_name)
            ctx["access_key_id"] = response["AccessKey"]["AccessKeyId"]

        async def compensate(ctx: StepContext) -> None:
            await self.cloud.delete_user(user_name)

        return Step(name=f"create-iam-user-{user_name}", execute=execute, compensate=compensate)

    def _node_pool_parameters(self, pool: NodePoolReconciled, ctx: StepContext) -> dict[str, str]:
        network: Optional[ClusterNetwork] = ctx.get("network")
        min_size, max_size = (
            (pool.min_count, pool.max_count) if pool.autoscaling else (pool.count, pool.count)
        )
        return {
            "NodeInstanceType": pool.instance_type,
            "NodeImageId": pool.image,
            "NodeSpotPrice": pool.spot_price,
            "NodeAutoScalingGroupMinSize": str(min_size),
            "NodeAutoScalingGroupMaxSize": str(max_size),
            "NodeAutoScalingInitSize": str(pool.count),
            "VpcId": network.vpc_id if network else "",
            "Subnets": ",".join(network.subnet_ids) if network else "",
            "ClusterControlPlaneSecurityGroup": network.security_group_id if network else "",
        }

    def create_node_pool_stack(self, stack_name: str, pool: NodePoolReconciled) -> Step:
        async def execute(ctx: StepContext) -> None:
            instance_role = f"arn:aws:iam::{self.cloud.account_id}:role/{stack_name}-NodeInstanceRole"
            await self.cloud.create_stack(
                stack_name,
                parameters=self._node_pool_parameters(pool, ctx),
                outputs={"NodeInstanceRole": instance_role},
            )
            self.cloud.auto_scaling_groups[stack_name] = {
                "AutoScalingGroupName": f"{stack_name}-NodeGroup",
                "DesiredCapacity": pool.count,
            }
            ctx.setdefault("node_instance_roles", []).append(instance_role)

        async def compensate(ctx: StepContext) -> None:
            await self.cloud.delete_stack(stack_name)

        return Step(name=f"create-node-pool-{pool.name}", execute=execute, compensate=compensate)

    def update_node_pool_stack(self, stack_name: str, pool: NodePoolReconciled) -> Step:
        previous: dict[str, Any] = {}

        async def execute(ctx: StepContext) -> None:
            stack = await self.cloud.describe_stack(stack_name)
            if stack is not None:
                previous["parameters"] = {
                    p["ParameterKey"]: p["ParameterValue"] for p in stack["Parameters"]
                }
            await self.cloud.update_stack(stack_name, self._node_pool_parameters(pool, ctx))
            group = self.cloud.auto_scaling_groups.setdefault(
                stack_name, {"AutoScalingGroupName": f"{stack_name}-NodeGroup"}
            )
            group["DesiredCapacity"] = pool.count

        async def compensate(ctx: StepContext) -> None:
            if "parameters" in previous:
                await self.cloud.update_stack(stack_name, previous["parameters"])

        return Step(name=f"update-node-pool-{pool.name}", execute=execute, compensate=compensate)

    # -- Delete ----------------------------------------------------------------

    def delete_stack(self, stack_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            if not await self.cloud.delete_stack(stack_name):
                logger.info("Stack %s already deleted", stack_name)

        return Step(name=f"delete-stack-{stack_name}", execute=execute, destructive=True)

    def wait_resource_deletion(self, cluster_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            cluster = await self.cloud.describe_cluster(cluster_name)
            if cluster is not None and cluster["status"] == "CREATING":
                raise SimulatedAwsError(
                    "ResourceInUseException", f"Cluster {cluster_name} is still being created"
                )
            logger.debug("No dependent resources left for cluster %s", cluster_name)

        return Step(name=f"wait-resource-deletion-{cluster_name}", execute=execute)

    def delete_cluster(self, cluster_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            if not await self.cloud.delete_cluster(cluster_name):
                logger.info("EKS cluster %s already deleted", cluster_name)

        return Step(name=f"delete-eks-cluster-{cluster_name}", execute=execute, destructive=True)

    def delete_ssh_key(self, key_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            await self.cloud.delete_key_pair(key_name)

        return Step(name=f"delete-ssh-key-{key_name}", execute=execute, destructive=True)

    def delete_iam_role(self, role_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            await self.cloud.delete_role(role_name)

        return Step(name=f"delete-iam-role-{role_name}", execute=execute, destructive=True)

    def delete_user(self, user_name: str, access_key_id: str = "") -> Step:
        async def execute(ctx: StepContext) -> None:
            if not await self.cloud.delete_user(user_name):
                logger.info("IAM user %s already deleted", user_name)

        return Step(name=f"delete-iam-user-{user_name}", execute=execute, destructive=True)

    # -- Live state --------------------------------------------------------------

    async def cluster_stack_outputs(self, stack_name: str) -> dict[str, str]:
        stack = await self.cloud.describe_stack(stack_name)
        if stack is None:
            return {}
        return {o["OutputKey"]: o["OutputValue"] for o in stack["Outputs"]}

    async def describe_node_pool(self, stack_name: str) -> Optional[LiveAttributes]:
        stack = await self.cloud.describe_stack(stack_name)
        if stack is None:
            return None
        parameters = {p["ParameterKey"]: p["ParameterValue"] for p in stack["Parameters"]}
        group = await self.cloud.describe_auto_scaling_group(stack_name)
        return LiveAttributes(
            instance_type=parameters.get("NodeInstanceType", ""),
            image=parameters.get("NodeImageId", ""),
            spot_price=parameters.get("NodeSpotPrice", ""),
            observed_capacity=group["DesiredCapacity"] if group else None,
        )

    async def describe_cluster(self, cluster_name: str) -> ClusterDescription:
        cluster = await self.cloud.describe_cluster(cluster_name)
        if cluster is None:
            return ClusterDescription(name=cluster_name, state="NOT_FOUND", active=False)
        return ClusterDescription(
            name=cluster_name,
            state=cluster["status"],
            active=cluster["status"] == "ACTIVE",
            version=cluster["version"],
            endpoint=cluster["endpoint"],
        )


class AwsAdapter:
    """
    AWS provisioning adapter.

    Configuration parameters
    ------------------------
    cloud : SimulatedAwsCloud | None
        Backend the sessions talk to. A fresh simulated account when omitted.
    """

    def __init__(self, cloud: Optional[SimulatedAwsCloud] = None) -> None:
        self.cloud = cloud or SimulatedAwsCloud()

    def connect(self, credentials: Credentials, region: str) -> AwsSession:
        access_key_id = credentials.get(ACCESS_KEY_ID)
        if not access_key_id or not credentials.get(SECRET_ACCESS_KEY):
            raise ConfigurationError(
                f"Secret {credentials.secret_id} is missing {ACCESS_KEY_ID}/{SECRET_ACCESS_KEY}"
            )
        logger.debug("AWS session opened (region=%s, key=%s...)", region, access_key_id[:4])
        return AwsSession(self.cloud, region, access_key_id)
