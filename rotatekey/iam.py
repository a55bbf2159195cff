"""
IAM access key operations used by the rotation.
"""

import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .core import KeyCreationError


def create_iam_client(profile_name=None):
    """
    Create an IAM client.

    Args:
        profile_name: AWS profile for the session, or None for the default chain

    Returns:
        boto3 IAM client
    """
    session = boto3.Session(profile_name=profile_name)
    return session.client("iam")


def _error_details(error):
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message", str(error))
    return str(error)


class IAMKeyGateway:
    """Access key calls for the IAM user behind an injected client."""

    def __init__(self, iam_client):
        self.iam_client = iam_client

    def list_access_keys(self):
        """
        List the caller's access keys.

        Returns:
            list: AccessKeyMetadata dicts (AccessKeyId, CreateDate, Status, ...),
            empty if the listing failed
        """
        keys = []
        try:
            paginator = self.iam_client.get_paginator("list_access_keys")
            for page in paginator.paginate():
                keys.extend(page.get("AccessKeyMetadata", []))
        except (ClientError, BotoCoreError) as e:
            print("Error: Failed to list access keys", file=sys.stderr)
            print(f"Details: {_error_details(e)}", file=sys.stderr)
            return []
        return keys

    def create_access_key(self):
        """
        Create a new access key for the caller.

        Returns:
            tuple: (access_key_id, secret_access_key)

        Raises:
            KeyCreationError: If the call fails or returns no key material
        """
        try:
            response = self.iam_client.create_access_key()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            if error_code == "LimitExceeded":
                raise KeyCreationError(
                    "Failed to create access key: the IAM user already has two access keys"
                ) from e
            raise KeyCreationError(f"Failed to create access key: {_error_details(e)}") from e
        except BotoCoreError as e:
            raise KeyCreationError(f"Failed to create access key: {e}") from e

        access_key = response.get("AccessKey") or {}
        access_key_id = access_key.get("AccessKeyId")
        secret_access_key = access_key.get("SecretAccessKey")
        if not access_key_id or not secret_access_key:
            raise KeyCreationError("No access key created")

        return access_key_id, secret_access_key

    def delete_access_key(self, access_key_id):
        """
        Delete an access key.

        Failures are printed and returned, never raised: the new key is
        already in place, so an undeleted old key only stays active.

        Returns:
            tuple: (deleted, error message or None)
        """
        try:
            self.iam_client.delete_access_key(AccessKeyId=access_key_id)
        except (ClientError, BotoCoreError) as e:
            details = _error_details(e)
            print(f"Error: Failed to delete access key {access_key_id}", file=sys.stderr)
            print(f"Details: {details}", file=sys.stderr)
            return False, details
        return True, None
