from __future__ import annotations

from typing import Dict

from contentful_transform.connectors.contentful.types import DELIVERY_MEDIA_TYPE, MANAGEMENT_MEDIA_TYPE

# Personal access tokens carry management scope; delivery keys carry no prefix.
MANAGEMENT_TOKEN_PREFIX = "CFPAT-"


def is_management_token(token: str) -> bool:
    return token.startswith(MANAGEMENT_TOKEN_PREFIX)


def build_auth_headers(token: str, *, management: bool) -> Dict[str, str]:
    if not token:
        raise ValueError("an access token is required")

    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": MANAGEMENT_MEDIA_TYPE if management else DELIVERY_MEDIA_TYPE,
    }
