from __future__ import annotations
from typing import Any, List, Optional

import boto3
from botocore.exceptions import ClientError

from ami_orch.errors import from_client_error


class IAMClient:
    """AWS IAM client for roles, inline policies and instance profiles."""

    def __init__(self, region: str, client: Optional[Any] = None):
        self.region = region
        self.client = client or boto3.client('iam', region_name=region)

    # --- roles ---
    def create_role(self, role_name: str, trust_policy: str) -> str:
        """Create a role and return its name as reported by IAM."""
        try:
            response = self.client.create_role(
                RoleName=role_name,
                AssumeRolePolicyDocument=trust_policy,
            )
            return response['Role']['RoleName']
        except ClientError as e:
            raise from_client_error(e, f"create IAM role {role_name}") from e

    def delete_role(self, role_name: str) -> None:
        try:
            self.client.delete_role(RoleName=role_name)
        except ClientError as e:
            raise from_client_error(e, f"delete IAM role {role_name}") from e

    # --- inline policies ---
    def put_role_policy(self, role_name: str, policy_name: str, policy_document: str) -> None:
        try:
            self.client.put_role_policy(
                RoleName=role_name,
                PolicyName=policy_name,
                PolicyDocument=policy_document,
            )
        except ClientError as e:
            raise from_client_error(e, f"attach inline policy {policy_name} to role {role_name}") from e

    def list_role_policies(self, role_name: str) -> List[str]:
        try:
            names: List[str] = []
            paginator = self.client.get_paginator('list_role_policies')
            for page in paginator.paginate(RoleName=role_name):
                names.extend(page.get('PolicyNames', []))
            return names
        except ClientError as e:
            raise from_client_error(e, f"list inline policies of role {role_name}") from e

    def delete_role_policy(self, role_name: str, policy_name: str) -> None:
        try:
            self.client.delete_role_policy(RoleName=role_name, PolicyName=policy_name)
        except ClientError as e:
            raise from_client_error(e, f"delete inline policy {policy_name} of role {role_name}") from e

    def get_user_name(self) -> str:
        """Name of the IAM user behind the current credentials."""
        try:
            return self.client.get_user()['User']['UserName']
        except ClientError as e:
            raise from_client_error(e, "get IAM user") from e

    def put_user_policy(self, user_name: str, policy_name: str, policy_document: str) -> None:
        try:
            self.client.put_user_policy(
                UserName=user_name,
                PolicyName=policy_name,
                PolicyDocument=policy_document,
            )
        except ClientError as e:
            raise from_client_error(e, f"attach inline policy {policy_name} to user {user_name}") from e

    # --- instance profiles ---
    def create_instance_profile(self, profile_name: str) -> None:
        try:
            self.client.create_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            raise from_client_error(e, f"create instance profile {profile_name}") from e

    def add_role_to_instance_profile(self, profile_name: str, role_name: str) -> None:
        try:
            self.client.add_role_to_instance_profile(
                InstanceProfileName=profile_name,
                RoleName=role_name,
            )
        except ClientError as e:
            raise from_client_error(e, f"add role {role_name} to instance profile {profile_name}") from e

    def remove_role_from_instance_profile(self, profile_name: str, role_name: str) -> None:
        try:
            self.client.remove_role_from_instance_profile(
                InstanceProfileName=profile_name,
                RoleName=role_name,
            )
        except ClientError as e:
            raise from_client_error(e, f"remove role {role_name} from instance profile {profile_name}") from e

    def get_instance_profile_roles(self, profile_name: str) -> List[str]:
        """
        Names of the roles bound to an instance profile.

        Raises:
            ResourceNotFoundError: If the profile is not visible (yet)
        """
        try:
            response = self.client.get_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            raise from_client_error(e, f"get instance profile {profile_name}") from e
        return [role['RoleName'] for role in response['InstanceProfile'].get('Roles', [])]

    def delete_instance_profile(self, profile_name: str) -> None:
        try:
            self.client.delete_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            raise from_client_error(e, f"delete instance profile {profile_name}") from e
