"""
Account checks run before enabling optional services.
"""

import logging
from typing import List

from botocore.exceptions import ClientError

from clients import ClientSet

logger = logging.getLogger(__name__)


def can_access_ecr_repos(clients: ClientSet, account_id: str, repo_names: List[str]) -> bool:
    """Check whether this account can read the given container repositories."""
    try:
        clients.ecr.describe_repositories(registryId=account_id, repositoryNames=repo_names)
        return True
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "AccessDeniedException":
            return False
        raise


def list_key_pairs(clients: ClientSet) -> List[str]:
    """List EC2 key pair names in the current region."""
    response = clients.ec2.describe_key_pairs()
    return [k["KeyName"] for k in response.get("KeyPairs", [])]


def key_pairs_exist(clients: ClientSet, names: List[str]) -> bool:
    """Check that every named key pair exists."""
    try:
        clients.ec2.describe_key_pairs(KeyNames=names)
        return True
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") != "InvalidKeyPair.NotFound":
            raise
        logger.debug(f"Key pair lookup failed: {e}")
        return False


def list_availability_zones(clients: ClientSet, region: str) -> List[str]:
    """List availability zone names of a region."""
    response = clients.ec2.describe_availability_zones(
        Filters=[{"Name": "region-name", "Values": [region]}]
    )
    return [
        zone["ZoneName"]
        for zone in response.get("AvailabilityZones", [])
        if zone.get("RegionName") == region
    ]
