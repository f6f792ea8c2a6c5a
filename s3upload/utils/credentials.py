"""
Project scoped AWS credentials.

Every project owns its own pair of credentials, exported as
``<PROJECT>_AWS_ACCESS_KEY`` and ``<PROJECT>_AWS_SECRET_ACCESS_KEY`` (project
name upper-cased). Lookup happens once at session start and fails fast.

Security Principles:
    - Never log secret values, only variable names
    - Credentials are passed explicitly to the store client
    - Ambient AWS_* variables are only touched inside scoped_credentials(),
      and always restored on exit

Usage:
    from s3upload.utils.credentials import resolve_project_credentials, scoped_credentials

    credentials = resolve_project_credentials("shop")
    with scoped_credentials(credentials):
        client = session.client("s3")
"""

import os
import re
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Union

from dotenv import load_dotenv

from s3upload.errors import ConfigurationError
from s3upload.utils.logging import get_logger

logger = get_logger(__name__)

AWS_ACCESS_KEY_SUFFIX = "AWS_ACCESS_KEY"
AWS_SECRET_ACCESS_KEY_SUFFIX = "AWS_SECRET_ACCESS_KEY"

# Variables read by botocore's default credential chain
AMBIENT_ACCESS_KEY = "AWS_ACCESS_KEY_ID"
AMBIENT_SECRET_KEY = "AWS_SECRET_ACCESS_KEY"
AMBIENT_CLEARED = ("AWS_SESSION_TOKEN", "AWS_SECURITY_TOKEN", "AWS_PROFILE")

SHELL_LOOKUP_TIMEOUT_SECONDS = 5

_VARIABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Ambient credentials are process-wide; one scope at a time
_scope_lock = threading.RLock()


@dataclass(frozen=True)
class ProjectCredentials:
    """
    Credentials of one project.

    Attributes:
        project_name: Project the credentials belong to
        access_key_id: AWS access key id
        secret_access_key: AWS secret access key (excluded from repr)
    """

    project_name: str
    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)


def credential_variable_names(project_name: str) -> Dict[str, str]:
    """Names of the access/secret variables for a project."""
    prefix = project_name.upper() + "_"
    return {
        "access": prefix + AWS_ACCESS_KEY_SUFFIX,
        "secret": prefix + AWS_SECRET_ACCESS_KEY_SUFFIX,
    }


def read_variable_from_shell(name: str) -> Optional[str]:
    """
    Ask a shell for a variable the current process did not inherit.

    GUI launched hosts often miss variables exported in shell profiles.

    Args:
        name: Environment variable name

    Returns:
        Variable value, None when unset or the shell is unavailable
    """
    if not _VARIABLE_NAME.match(name):
        raise ValueError(f"Invalid environment variable name: {name}")

    try:
        completed = subprocess.run(
            ["sh", "-c", f'echo "${name}"'],
            capture_output=True,
            text=True,
            timeout=SHELL_LOOKUP_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Shell lookup of {name} failed: {e}")
        return None

    lines = completed.stdout.splitlines()
    value = lines[0].strip() if lines else ""
    return value or None


def lookup_variable(
    name: str,
    environ: Optional[Mapping[str, str]] = None,
    shell_fallback: bool = True,
) -> Optional[str]:
    """
    Look up a variable in the environment, falling back to a shell.

    Args:
        name: Environment variable name
        environ: Mapping to read instead of os.environ
        shell_fallback: Whether to ask a shell when the variable is missing

    Returns:
        Value, or None if not found anywhere
    """
    env = os.environ if environ is None else environ
    value = env.get(name)
    if value:
        return value
    if shell_fallback and _VARIABLE_NAME.match(name):
        logger.debug(f"{name} not in environment, trying shell lookup")
        return read_variable_from_shell(name)
    return None


def load_env_file(base_path: Union[str, Path]) -> bool:
    """
    Load a .env file from the project base dir, without overriding variables.

    Returns:
        True if a .env file was found and loaded
    """
    env_path = Path(base_path) / ".env"
    if not env_path.is_file():
        return False
    logger.info(f"Loading environment from {env_path}")
    return load_dotenv(env_path, override=False)


def resolve_project_credentials(
    project_name: str,
    environ: Optional[Mapping[str, str]] = None,
    shell_fallback: bool = True,
) -> ProjectCredentials:
    """
    Resolve the credentials of a project.

    Args:
        project_name: Project name, upper-cased into the variable prefix
        environ: Mapping to read instead of os.environ
        shell_fallback: Whether to ask a shell for missing variables

    Returns:
        ProjectCredentials

    Raises:
        ConfigurationError: If either variable is missing
    """
    names = credential_variable_names(project_name)
    access_key = lookup_variable(names["access"], environ, shell_fallback)
    secret_key = lookup_variable(names["secret"], environ, shell_fallback)

    if not access_key or not secret_key:
        error_msg = f"System variables {names['access']} or {names['secret']} not found"
        logger.error(error_msg)
        raise ConfigurationError(error_msg)

    logger.info(f"Credentials for project '{project_name}' found in {names['access']}")
    return ProjectCredentials(
        project_name=project_name,
        access_key_id=access_key,
        secret_access_key=secret_key,
    )


@contextmanager
def scoped_credentials(credentials: ProjectCredentials) -> Iterator[None]:
    """
    Temporarily expose a project's credentials as the ambient AWS variables.

    Previous values are restored on every exit path, and AWS session
    token/profile variables are hidden for the duration so another
    identity cannot leak into the scope. Scopes are serialized per process.

    Args:
        credentials: Credentials to expose

    Example:
        >>> with scoped_credentials(credentials):
        ...     client = boto3.session.Session().client("s3")
    """
    scoped: Dict[str, Optional[str]] = {
        AMBIENT_ACCESS_KEY: credentials.access_key_id,
        AMBIENT_SECRET_KEY: credentials.secret_access_key,
    }
    scoped.update({name: None for name in AMBIENT_CLEARED})

    with _scope_lock:
        previous = {name: os.environ.get(name) for name in scoped}
        try:
            for name, value in scoped.items():
                if value is None:
                    os.environ.pop(name, None)
                else:
                    os.environ[name] = value
            logger.debug(f"Credentials of '{credentials.project_name}' in scope")
            yield
        finally:
            for name, value in previous.items():
                if value is None:
                    os.environ.pop(name, None)
                else:
                    os.environ[name] = value
            logger.debug(f"Credentials of '{credentials.project_name}' out of scope")
