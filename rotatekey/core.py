"""
Credentials file access for rotate-aws-key.

The AWS credentials file and the optional .env file are patched as text:
only the lines that hold the rotated key pair change, everything else in
the file is written back byte for byte.
"""

import os
import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

ENV_ACCESS_KEY_PATTERN = re.compile(r"^AWS_ACCESS_KEY_ID=[^\r\n]*", re.MULTILINE)
ENV_SECRET_KEY_PATTERN = re.compile(r"^AWS_SECRET_ACCESS_KEY=[^\r\n]*", re.MULTILINE)
SECTION_HEADER_PATTERN = re.compile(r"^\[([^\]\r\n]*)\][ \t]*\r?$", re.MULTILINE)

# Values stop before the line ending so CRLF files keep their "\r".
ACCESS_KEY_LINE_PATTERN = re.compile(r"^[ \t]*aws_access_key_id[ \t]*=[^\r\n]*", re.MULTILINE)
SECRET_KEY_LINE_PATTERN = re.compile(
    r"^[ \t]*aws_secret_access_key[ \t]*=[^\r\n]*", re.MULTILINE
)


class RotationError(Exception):
    """Base class for errors raised while rotating access keys."""


class ProfileNotFoundError(RotationError):
    """The profile has no well-formed section in the credentials file."""


class KeyCreationError(RotationError):
    """IAM did not hand back a new access key."""


class EnvWriteError(RotationError):
    """The .env file could not be updated."""


class ProfileResolutionError(RotationError):
    """The local access key of a profile could not be resolved."""


def get_aws_credentials_path():
    """Get the AWS credentials file path, honouring AWS_SHARED_CREDENTIALS_FILE."""
    override = os.environ.get("AWS_SHARED_CREDENTIALS_FILE")
    if override:
        return os.path.expanduser(override)
    return os.path.expanduser("~/.aws/credentials")


def _read_text(path):
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write_credentials_text(creds_file, text):
    # New files get owner-only permissions; existing files keep theirs.
    # This is a plain truncate-and-write, so a crash midway can leave a
    # partial file behind.
    fd = os.open(creds_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def list_profile_names(creds_file=None):
    """
    List the profile names defined in the AWS credentials file.

    Args:
        creds_file: Path to credentials file (defaults to get_aws_credentials_path())

    Returns:
        list: Section names in file order

    Raises:
        OSError: If the credentials file cannot be read
    """
    creds_file = creds_file or get_aws_credentials_path()
    return SECTION_HEADER_PATTERN.findall(_read_text(creds_file))


def profile_section_span(text, profile_name):
    """
    Locate the body of a profile section.

    Returns:
        tuple: (start, end) offsets of the lines between the [profile_name]
        header and the next header, or None if the header is absent
    """
    header = re.compile(
        rf"^\[{re.escape(profile_name)}\][ \t]*\r?$", re.MULTILINE
    ).search(text)
    if header is None:
        return None
    next_header = SECTION_HEADER_PATTERN.search(text, header.end())
    return header.end(), next_header.start() if next_header else len(text)


def replace_profile(profile_name, access_key_id, secret_access_key, creds_file=None):
    """
    Replace the key pair of a profile in the AWS credentials file.

    The aws_access_key_id and aws_secret_access_key lines of the section are
    rewritten in place. Any other lines of the section (region, session
    token, comments) and every other section stay untouched. The file is
    never written when the section or one of its key lines is missing, and
    a missing section is never added.

    Args:
        profile_name: Section name, without brackets
        access_key_id: New access key id
        secret_access_key: New secret access key
        creds_file: Path to credentials file (defaults to get_aws_credentials_path())

    Raises:
        OSError: If the credentials file cannot be read or written
        ProfileNotFoundError: If no [profile_name] section holding both key lines exists
    """
    creds_file = creds_file or get_aws_credentials_path()
    text = _read_text(creds_file)

    span = profile_section_span(text, profile_name)
    id_count = secret_count = 0
    if span is not None:
        start, end = span
        body, id_count = ACCESS_KEY_LINE_PATTERN.subn(
            lambda match: f"aws_access_key_id={access_key_id}", text[start:end], count=1
        )
        body, secret_count = SECRET_KEY_LINE_PATTERN.subn(
            lambda match: f"aws_secret_access_key={secret_access_key}", body, count=1
        )

    if not (id_count and secret_count):
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in {creds_file} "
            f"(expected [{profile_name}] with aws_access_key_id and aws_secret_access_key)"
        )

    _write_credentials_text(creds_file, text[:start] + body + text[end:])


def replace_env_vars(env_file, access_key_id, secret_access_key):
    """
    Update AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY in a .env file.

    Only the first line of each variable is replaced; a variable that is not
    present is not added. All other content is preserved verbatim.

    Args:
        env_file: Path to the .env file (relative paths resolve against the cwd)
        access_key_id: New access key id
        secret_access_key: New secret access key

    Returns:
        str: Absolute path of the file that was updated

    Raises:
        EnvWriteError: If the file cannot be read or written
    """
    env_path = os.path.abspath(env_file)
    try:
        text = _read_text(env_path)
        text = ENV_ACCESS_KEY_PATTERN.sub(
            lambda match: f"AWS_ACCESS_KEY_ID={access_key_id}", text, count=1
        )
        text = ENV_SECRET_KEY_PATTERN.sub(
            lambda match: f"AWS_SECRET_ACCESS_KEY={secret_access_key}", text, count=1
        )
        with open(env_path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
    except OSError as e:
        raise EnvWriteError(f"Failed updating env file: {env_path}\n{e}") from e
    return env_path


def get_local_access_key_id(profile_name):
    """
    Resolve the access key id configured locally for a profile.

    Uses the standard boto3 credential resolution for the named profile, so
    this reads whatever botocore would use, not the raw credentials text.

    Raises:
        ProfileResolutionError: If the profile is unknown or has no credentials
    """
    try:
        session = boto3.Session(profile_name=profile_name)
        credentials = session.get_credentials()
        # Role profiles resolve lazily, so reading the key may hit STS.
        access_key = credentials.access_key if credentials is not None else None
    except (BotoCoreError, ClientError) as e:
        raise ProfileResolutionError(
            f"Could not load credentials for profile '{profile_name}': {e}"
        ) from e

    if not access_key:
        raise ProfileResolutionError(f"Profile '{profile_name}' has no access key configured")

    return access_key
