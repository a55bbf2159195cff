"""
Profile resolution and the rotation sequence.

A rotation creates the new key and installs it before the old key is
deleted, so a profile always has at least one valid key. Credentials file
writes run strictly one after another; only the read-only resolution at
the start and the deletes at the end fan out.
"""

import asyncio
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .core import (
    EnvWriteError,
    KeyCreationError,
    ProfileNotFoundError,
    ProfileResolutionError,
    get_local_access_key_id,
    replace_env_vars,
    replace_profile,
)

# IAM allows two access keys per user, and a rotation needs a free slot.
MAX_PROFILES_PER_RUN = 2

STATUS_NO_KEYS = "no_keys"
STATUS_NOTHING = "nothing"
STATUS_CANCELLED = "cancelled"
STATUS_TOO_MANY = "too_many"
STATUS_COMPLETE = "complete"


@dataclass
class Profile:
    """A local profile whose access key exists in IAM."""

    name: str
    access_key_id: str
    create_date: Optional[datetime] = None

    def age_days(self, now=None):
        """Calendar days since the access key was created, or None if unknown."""
        if self.create_date is None:
            return None
        now = now or datetime.now(timezone.utc)
        create_date = self.create_date
        if create_date.tzinfo is None:
            create_date = create_date.replace(tzinfo=timezone.utc)
        return (now.astimezone().date() - create_date.astimezone().date()).days


@dataclass
class RotationResult:
    name: str
    new_access_key_id: str
    new_secret_access_key: str
    old_access_key_id: str
    credentials_updated: bool = True


@dataclass
class DeleteOutcome:
    name: str
    access_key_id: str
    deleted: bool
    error: Optional[str] = None


@dataclass
class RotationReport:
    status: str
    selected: List[Profile] = field(default_factory=list)
    rotated: List[RotationResult] = field(default_factory=list)
    deletions: List[DeleteOutcome] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)


def mask_key(access_key_id):
    return f"{access_key_id[:10]}***"


async def resolve_profiles(gateway, names, key_loader=get_local_access_key_id):
    """
    Match local profiles against the caller's IAM access keys.

    The remote key listing and every local profile lookup run concurrently.
    Profiles whose local access key id is not among the remote keys (or is
    listed without a creation date) are dropped, as are profiles whose
    credentials cannot be resolved.

    Args:
        gateway: IAMKeyGateway
        names: Candidate profile names
        key_loader: Callable returning the local access key id for a profile name

    Returns:
        list: Profile objects in the order of names
    """
    names = list(names)
    remote_keys, *local_ids = await asyncio.gather(
        asyncio.to_thread(gateway.list_access_keys),
        *(asyncio.to_thread(key_loader, name) for name in names),
        return_exceptions=True,
    )
    if isinstance(remote_keys, BaseException):
        raise remote_keys

    create_dates = {key["AccessKeyId"]: key.get("CreateDate") for key in remote_keys}

    profiles = []
    for name, local_id in zip(names, local_ids):
        if isinstance(local_id, ProfileResolutionError):
            print(f"⚠ Warning: Skipping profile '{name}': {local_id}", file=sys.stderr)
            continue
        if isinstance(local_id, BaseException):
            raise local_id
        if not create_dates.get(local_id):
            continue
        profiles.append(Profile(name, local_id, create_dates[local_id]))

    return profiles


async def rotate_profile(gateway, profile, report, env_file=None, creds_file=None):
    """
    Create a new key for one profile and install it locally.

    The old key is left alone here; deletion happens once every selected
    profile has been processed. A failed credentials write is recorded but
    the new key still counts as rotated.

    Returns:
        RotationResult, or None if no key could be created
    """
    try:
        new_id, new_secret = await asyncio.to_thread(gateway.create_access_key)
    except KeyCreationError as e:
        print(f"Error: Profile '{profile.name}': {e}", file=sys.stderr)
        report.failures.append((profile.name, str(e)))
        return None

    print(f"✓ New access key created for '{profile.name}': {mask_key(new_id)}")

    result = RotationResult(profile.name, new_id, new_secret, profile.access_key_id)
    try:
        await asyncio.to_thread(
            replace_profile, profile.name, new_id, new_secret, creds_file=creds_file
        )
        print(f"✓ Credentials updated for profile '{profile.name}'")
    except (ProfileNotFoundError, OSError) as e:
        print(f"Error: Failed replacing credentials\n{e}", file=sys.stderr)
        report.failures.append((profile.name, str(e)))
        result.credentials_updated = False

    if env_file:
        try:
            env_path = await asyncio.to_thread(replace_env_vars, env_file, new_id, new_secret)
            print(f"✓ Env file updated: {env_path}")
        except EnvWriteError as e:
            print(f"⚠ Warning: {e}", file=sys.stderr)

    report.rotated.append(result)
    return result


async def delete_old_keys(gateway, rotated):
    """
    Delete the superseded access keys concurrently.

    Returns:
        list: DeleteOutcome per rotated profile, in the order given
    """

    async def delete(result):
        deleted, error = await asyncio.to_thread(
            gateway.delete_access_key, result.old_access_key_id
        )
        if deleted:
            print(f"✓ Old access key deleted for '{result.name}': {mask_key(result.old_access_key_id)}")
        return DeleteOutcome(result.name, result.old_access_key_id, deleted, error)

    return list(await asyncio.gather(*(delete(result) for result in rotated)))


async def rotate(
    gateway,
    candidates,
    select=None,
    env_file=None,
    creds_file=None,
    key_loader=get_local_access_key_id,
):
    """
    Rotate the access keys of up to two profiles.

    Args:
        gateway: IAMKeyGateway used for every remote call
        candidates: Profile names to consider
        select: Optional callable taking the eligible profiles and returning the
            chosen names, or None to cancel. Without it every eligible profile
            is rotated.
        env_file: .env file to update, honoured only for a single profile
        creds_file: Credentials file (defaults to get_aws_credentials_path())
        key_loader: Local access key lookup, see resolve_profiles()

    Returns:
        RotationReport
    """
    profiles = await resolve_profiles(gateway, candidates, key_loader=key_loader)
    if not profiles:
        return RotationReport(STATUS_NO_KEYS)

    if select is None:
        selected = profiles
    else:
        # The prompt stays on the loop thread so Ctrl-C reaches it.
        chosen = select(profiles)
        if chosen is None:
            return RotationReport(STATUS_CANCELLED)
        chosen = set(chosen)
        selected = [profile for profile in profiles if profile.name in chosen]

    if len(selected) > MAX_PROFILES_PER_RUN:
        return RotationReport(STATUS_TOO_MANY, selected=selected)
    if not selected:
        return RotationReport(STATUS_NOTHING)

    report = RotationReport(STATUS_COMPLETE, selected=selected)
    # With two profiles there is no telling which one the .env file belongs to.
    target_env = env_file if len(selected) == 1 else None

    for profile in selected:
        await rotate_profile(
            gateway, profile, report, env_file=target_env, creds_file=creds_file
        )

    report.deletions = await delete_old_keys(gateway, report.rotated)
    return report
