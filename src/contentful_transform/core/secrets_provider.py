from __future__ import annotations

from typing import Optional, Protocol


class SecretsProvider(Protocol):
    def get_secret(self, name: str) -> Optional[str]:
        ...
