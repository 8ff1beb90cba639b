"""
Quantity Distributor

Architectural Intent:
- Pure function spreading a node pool's instance count across worker subnets
- Favors maximal zone spread when the count divides evenly, accepts zone
  imbalance only when it does not

Domain Logic:
- count divisible by 3 -> count/3 in each of the first 3 subnets
- else divisible by 2  -> count/2 in each of the first 2 subnets
- else                 -> full count in the first subnet
- count of 0 or fewer than MIN_SUBNETS subnets -> (0, []); callers surface a
  ConfigurationError
"""

from typing import Sequence

MIN_SUBNETS = 3


def distribute(count: int, subnets: Sequence[str]) -> tuple[int, list[str]]:
    """Return (per-subnet quantity, chosen subnets) for the given count.

    Subnet order is preserved from the input; identical inputs always give
    identical outputs.
    """
    if count <= 0 or len(subnets) < MIN_SUBNETS:
        return 0, []

    if count % 3 == 0:
        return count // 3, list(subnets[:3])
    if count % 2 == 0:
        return count // 2, list(subnets[:2])
    return count, list(subnets[:1])
