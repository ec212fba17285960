"""
Tests for account prerequisite checks.
"""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from deployment.prerequisites import (
    can_access_ecr_repos,
    key_pairs_exist,
    list_availability_zones,
    list_key_pairs,
)


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "Operation")


class TestPrerequisites:
    """Test ECR and EC2 checks."""

    def test_ecr_access(self) -> None:
        clients = Mock()
        assert can_access_ecr_repos(clients, "123", ["a", "b"])
        clients.ecr.describe_repositories.assert_called_once_with(
            registryId="123", repositoryNames=["a", "b"]
        )

    def test_ecr_access_denied(self) -> None:
        clients = Mock()
        clients.ecr.describe_repositories.side_effect = client_error("AccessDeniedException")
        assert not can_access_ecr_repos(clients, "123", ["a"])

    def test_ecr_other_error(self) -> None:
        clients = Mock()
        clients.ecr.describe_repositories.side_effect = client_error("ThrottlingException")
        with pytest.raises(ClientError):
            can_access_ecr_repos(clients, "123", ["a"])

    def test_key_pairs(self) -> None:
        clients = Mock()
        clients.ec2.describe_key_pairs.return_value = {"KeyPairs": [{"KeyName": "a"}, {"KeyName": "b"}]}
        assert list_key_pairs(clients) == ["a", "b"]
        assert key_pairs_exist(clients, ["a"])

    def test_key_pair_missing(self) -> None:
        clients = Mock()
        clients.ec2.describe_key_pairs.side_effect = client_error("InvalidKeyPair.NotFound")
        assert not key_pairs_exist(clients, ["nope"])

    def test_availability_zones(self) -> None:
        clients = Mock()
        clients.ec2.describe_availability_zones.return_value = {
            "AvailabilityZones": [
                {"ZoneName": "us-east-1a", "RegionName": "us-east-1"},
                {"ZoneName": "us-east-1b", "RegionName": "us-east-1"},
            ]
        }
        assert list_availability_zones(clients, "us-east-1") == ["us-east-1a", "us-east-1b"]
