"""
Master key management for the secret vault.

Every account secret is encrypted under a key derived from one server-held
master password. Providers supply that password from a static value, an
environment variable, a file, or AWS Secrets Manager.
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Optional


class MasterKeyProvider(ABC):
    """Abstract source of the vault master password."""

    @abstractmethod
    def get_master_password(self) -> bytes:
        """
        Return the master password bytes.

        Raises:
            RuntimeError: If the password is not configured
        """
        pass


class StaticMasterKeyProvider(MasterKeyProvider):
    """Master password held in memory. For tests and tooling."""

    def __init__(self, password: bytes):
        if isinstance(password, str):
            password = password.encode("utf-8")
        if not password:
            raise ValueError("master password must not be empty")
        self._password = password

    def get_master_password(self) -> bytes:
        return self._password


class EnvMasterKeyProvider(MasterKeyProvider):
    """Master password read from an environment variable on each use."""

    def __init__(self, variable: str = "ZKOTP_MASTER_PASSWORD"):
        self._variable = variable

    def get_master_password(self) -> bytes:
        value = os.getenv(self._variable, "")
        if not value:
            raise RuntimeError(f"{self._variable} is not defined in the environment variables")
        return value.encode("utf-8")


class FileMasterKeyProvider(MasterKeyProvider):
    """
    Master password stored in a file (e.g. a mounted secret).

    Reloads when the file modification time changes.
    """

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.RLock()
        self._cached: Optional[bytes] = None
        self._mtime: float = 0

    def get_master_password(self) -> bytes:
        with self._lock:
            mtime = os.path.getmtime(self._path)
            if self._cached is None or mtime > self._mtime:
                with open(self._path, "rb") as f:
                    value = f.read().strip()
                if not value:
                    raise RuntimeError(f"Master key file is empty: {self._path}")
                self._cached = value
                self._mtime = mtime
            return self._cached


class AwsSecretsManagerProvider(MasterKeyProvider):
    """
    Master password fetched from AWS Secrets Manager.

    The secret string is fetched once and cached for the life of the
    provider.

    Docs: https://docs.aws.amazon.com/secretsmanager/latest/apireference/API_GetSecretValue.html
    """

    def __init__(self, secret_id: str, region: Optional[str] = None):
        self._secret_id = secret_id
        self._region = region
        self._client = None
        self._cached: Optional[bytes] = None
        self._lock = threading.RLock()

    def _get_client(self):
        """Lazy-load boto3 client."""
        if self._client is None:
            import boto3
            self._client = boto3.client("secretsmanager", region_name=self._region)
        return self._client

    def get_master_password(self) -> bytes:
        with self._lock:
            if self._cached is None:
                resp = self._get_client().get_secret_value(SecretId=self._secret_id)
                value = resp.get("SecretString") or resp.get("SecretBinary")
                if not value:
                    raise RuntimeError(f"Secret {self._secret_id} has no value")
                self._cached = value.encode("utf-8") if isinstance(value, str) else bytes(value)
            return self._cached


def get_master_key_provider(
    source: str = "env",
    env_variable: str = "ZKOTP_MASTER_PASSWORD",
    key_path: Optional[str] = None,
    aws_secret_id: Optional[str] = None,
    aws_region: Optional[str] = None
) -> MasterKeyProvider:
    """
    Factory function to create the configured master key provider.

    Args:
        source: "env", "file" or "aws_secrets_manager"
        env_variable: Variable name for the env provider
        key_path: Path for the file provider
        aws_secret_id: Secret id for the AWS provider
        aws_region: AWS region for the AWS provider

    Returns:
        Configured MasterKeyProvider instance
    """
    if source == "aws_secrets_manager":
        if not aws_secret_id:
            raise ValueError("ZKOTP_AWS_SECRET_ID required for aws_secrets_manager master key source")
        return AwsSecretsManagerProvider(secret_id=aws_secret_id, region=aws_region)

    if source == "file":
        if not key_path:
            raise ValueError("ZKOTP_MASTER_KEY_PATH required for file master key source")
        return FileMasterKeyProvider(key_path)

    if source != "env":
        raise ValueError(f"Unknown master key source: {source}")
    return EnvMasterKeyProvider(env_variable)
