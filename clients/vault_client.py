"""
Vault-backed secrets for the marketplace services.

AppRole login against a KV v2 mount. Every path is read under the 'mandi/'
prefix, once per process: the first read of a path caches all of its
fields. Missing configuration or an unreadable path is fatal at startup.

Environment:
    VAULT_ADDR, VAULT_ROLE_ID, VAULT_SECRET_ID (required)
    VAULT_NAMESPACE (optional)

Secret layout:
    mandi/database  url
    mandi/valkey    url
    mandi/auth      jwt_secret
    mandi/sms       gateway_url, api_key, hmac_secret
"""

import logging
import os
import threading

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

SECRET_PREFIX = "mandi"

_client: "VaultClient | None" = None
_paths: dict[str, dict[str, str]] = {}
_lock = threading.Lock()


class VaultError(Exception):
    """Secrets could not be loaded. The application cannot start without them."""


class VaultClient:
    """AppRole-authenticated reader for secrets under SECRET_PREFIX."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
        role_id: str | None = None,
        secret_id: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = role_id or os.getenv("VAULT_ROLE_ID")
        secret_id = secret_id or os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        if namespace:
            self.client = hvac.Client(url=self.vault_addr, namespace=namespace)
        else:
            self.client = hvac.Client(url=self.vault_addr)

        self._login(role_id, secret_id)
        logger.info(f"Vault client ready: {self.vault_addr}")

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            response = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
            self.client.token = response["auth"]["client_token"]
        except (hvac.exceptions.VaultError, KeyError) as e:
            logger.error(f"AppRole login failed: {e}")
            raise VaultError(f"AppRole login failed: {e}") from e

        if not self.client.is_authenticated():
            raise VaultError("Vault rejected the AppRole token")

    def read(self, path: str) -> dict[str, str]:
        """
        All fields of mandi/<path>.

        Raises:
            VaultError: Path missing or not readable with this role.
        """
        full_path = f"{SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error(f"Secret path not found: {full_path}")
            raise VaultError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to {full_path}: {e}")
            raise VaultError(f"Access denied to secret '{full_path}'") from e

        return dict(response["data"]["data"])

    def get_secret(self, path: str, field: str) -> str:
        """
        One field of mandi/<path>.

        Raises:
            VaultError: Path missing or not readable.
            KeyError: Field not present in the secret.
        """
        return _field(self.read(path), path, field)


def _field(data: dict[str, str], path: str, field: str) -> str:
    if field not in data:
        raise KeyError(
            f"Field '{field}' not found in secret '{SECRET_PREFIX}/{path}'. "
            f"Available: {', '.join(sorted(data))}"
        )
    return data[field]


def _read_cached(path: str) -> dict[str, str]:
    global _client
    with _lock:
        if path not in _paths:
            if _client is None:
                _client = VaultClient()
            _paths[path] = _client.read(path)
        return _paths[path]


def reset() -> None:
    """Forget the client and every cached path (environment changed)."""
    global _client
    with _lock:
        _client = None
        _paths.clear()


def get_database_url() -> str:
    return _field(_read_cached("database"), "database", "url")


def get_valkey_url() -> str:
    return _field(_read_cached("valkey"), "valkey", "url")


def get_jwt_secret() -> str:
    return _field(_read_cached("auth"), "auth", "jwt_secret")


def get_sms_config() -> dict[str, str]:
    """Keyword arguments for SmsGatewayClient: gateway_url, api_key, hmac_secret."""
    data = _read_cached("sms")
    return {
        field: _field(data, "sms", field)
        for field in ("gateway_url", "api_key", "hmac_secret")
    }
