"""
rotate-aws-key: Rotate AWS IAM access keys of local credential profiles.

Creates a new access key, writes it into ~/.aws/credentials (and optionally
a .env file), then deletes the old key. Up to two profiles can be rotated in
one run, matching the IAM limit of two access keys per user.

Key features:
- Rotate the default profile, or pick profiles interactively
- New key is installed before the old key is deleted
- Optional .env update and printing of the new key pair
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .core import (
    EnvWriteError,
    KeyCreationError,
    ProfileNotFoundError,
    ProfileResolutionError,
    RotationError,
    get_aws_credentials_path,
    get_local_access_key_id,
    list_profile_names,
    replace_env_vars,
    replace_profile,
)
from .iam import IAMKeyGateway, create_iam_client
from .rotation import (
    DeleteOutcome,
    Profile,
    RotationReport,
    RotationResult,
    resolve_profiles,
    rotate,
)

__all__ = [
    # Rotation
    "rotate",
    "resolve_profiles",
    "Profile",
    "RotationResult",
    "DeleteOutcome",
    "RotationReport",
    # IAM
    "IAMKeyGateway",
    "create_iam_client",
    # Credentials file operations
    "get_aws_credentials_path",
    "list_profile_names",
    "replace_profile",
    "replace_env_vars",
    "get_local_access_key_id",
    # Errors
    "RotationError",
    "ProfileNotFoundError",
    "KeyCreationError",
    "EnvWriteError",
    "ProfileResolutionError",
]
