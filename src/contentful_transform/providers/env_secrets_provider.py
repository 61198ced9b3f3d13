from __future__ import annotations

import os
from typing import Mapping, Optional

from contentful_transform.core.secrets_provider import SecretsProvider


class EnvSecretsProvider(SecretsProvider):
    """Secrets provider reading access tokens from environment variables.

    `get_secret("access_token")` looks up `CONTENTFUL_ACCESS_TOKEN`; any other
    name is upper-cased and prefixed the same way.
    """

    prefix = "CONTENTFUL_"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get_secret(self, name: str) -> Optional[str]:
        value = self._environ.get(f"{self.prefix}{name.upper()}")
        return value or None
