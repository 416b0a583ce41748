"""
CRC — infrastructure/secrets/env.py

Name
- EnvSecretProvider

Responsibilities
- Resolve secrets from explicit overrides or environment variables
  (local development / CI only; production uses Key Vault).

Notes
- `oracle-password` is looked up as ORACLE_PASSWORD.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from ...crosscutting.exceptions import SecretRetrievalError


def _env_name(secret_name: str) -> str:
    return secret_name.strip().upper().replace("-", "_").replace(".", "_")


class EnvSecretProvider:
    """R: SecretProvider backed by a mapping and the process environment."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._overrides = {k: v for k, v in (overrides or {}).items() if v}
        self._environ = os.environ if environ is None else environ

    def get_secret(self, name: str) -> str:
        if name in self._overrides:
            return self._overrides[name]
        value = self._environ.get(_env_name(name))
        if not value:
            raise SecretRetrievalError(
                f"Secret '{name}' is not set (expected env var {_env_name(name)})"
            )
        return value
