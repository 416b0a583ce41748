"""
===============================================================================
CRC CARD — infrastructure/secrets/key_vault.py
===============================================================================

Component:
  KeyVaultSecretProvider (SecretProvider backed by Azure Key Vault)

Responsibilities:
  - Authenticate with managed identity (ManagedIdentityCredential when a
    user-assigned client id is configured, DefaultAzureCredential otherwise).
  - Resolve secrets by name through azure-keyvault-secrets SecretClient.
  - Cache values for a bounded TTL (pool reconnects do not hit the vault).

Collaborators:
  - azure.identity / azure.keyvault.secrets
  - crosscutting.exceptions.SecretRetrievalError

Constraints:
  - Never log secret values.
===============================================================================
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, Optional, Tuple

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential, ManagedIdentityCredential
from azure.keyvault.secrets import SecretClient

from ...crosscutting.exceptions import SecretRetrievalError
from ...crosscutting.logger import logger


class KeyVaultSecretProvider:
    """R: SecretProvider implementation for Azure Key Vault."""

    def __init__(
        self,
        vault_url: str,
        *,
        managed_identity_client_id: str = "",
        cache_ttl_seconds: float = 300.0,
        client: Optional[Any] = None,
    ) -> None:
        if not vault_url:
            raise ValueError("vault_url is required")

        # R: Client is injectable for tests; production builds it from managed identity.
        if client is None:
            if managed_identity_client_id:
                credential = ManagedIdentityCredential(client_id=managed_identity_client_id)
            else:
                credential = DefaultAzureCredential()
            client = SecretClient(vault_url=vault_url, credential=credential)

        self._client = client
        self._vault_url = vault_url
        self._ttl = cache_ttl_seconds
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[str, float]] = {}

    def get_secret(self, name: str) -> str:
        now = time.monotonic()
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None and cached[1] > now:
                return cached[0]

        try:
            secret = self._client.get_secret(name)
        except ResourceNotFoundError as exc:
            raise SecretRetrievalError(
                f"Secret '{name}' not found in Key Vault", original_error=exc
            ) from exc
        except AzureError as exc:
            logger.error(
                "Key Vault secret retrieval failed",
                extra={"secret_name": name, "vault_url": self._vault_url, "error_type": type(exc).__name__},
            )
            raise SecretRetrievalError(
                f"Failed to retrieve secret '{name}' from Key Vault", original_error=exc
            ) from exc

        value = secret.value
        if not value:
            raise SecretRetrievalError(f"Secret '{name}' has an empty value")

        with self._lock:
            self._cache[name] = (value, now + self._ttl)

        logger.info("Secret resolved from Key Vault", extra={"secret_name": name})
        return value

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one cached secret (or all), e.g. after a credential rotation."""
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)
