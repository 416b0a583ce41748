"""
Secret providers (Key Vault for deployed environments, env for local dev).
"""

from __future__ import annotations

from ...crosscutting.config import Settings
from ...domain.services import SecretProvider
from .env import EnvSecretProvider
from .key_vault import KeyVaultSecretProvider


def create_secret_provider(settings: Settings) -> SecretProvider:
    """R: Key Vault when KEY_VAULT_URL is set, environment otherwise."""
    if settings.key_vault_url:
        return KeyVaultSecretProvider(
            settings.key_vault_url,
            managed_identity_client_id=settings.managed_identity_client_id,
            cache_ttl_seconds=settings.secret_cache_ttl_seconds,
        )
    overrides = {}
    if settings.oracle_password:
        overrides[settings.oracle_password_secret_name] = settings.oracle_password
    return EnvSecretProvider(overrides=overrides)


__all__ = ["EnvSecretProvider", "KeyVaultSecretProvider", "create_secret_provider"]
