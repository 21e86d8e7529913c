"""Reversible encoding of tenant configuration into URL-safe tokens.

The token *is* the configuration record: the service keeps no session
storage, so every protocol request carries its full configuration as a
base64url-encoded JSON document in the path. Tokens are not signed; anyone
holding one can decode, edit and re-encode it.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MAX_CHANNELS = 100
MAX_TOKEN_LENGTH = 32_768


class TenantConfig(BaseModel):
    """Channel selection and quota preference carried inside a token."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    channels: list[str] = Field(default_factory=list)
    low_quota: bool = Field(default=True, alias="lowQuota")

    @field_validator("channels", mode="before")
    @classmethod
    def _normalise_channels(cls, value: object) -> list[str]:
        """Keep ordered, non-blank string identifiers, capped at 100."""

        if not isinstance(value, (list, tuple)):
            return []
        cleaned: list[str] = []
        for entry in value:
            if isinstance(entry, bool) or entry is None:
                continue
            if not isinstance(entry, (str, int, float)):
                continue
            text = str(entry).strip()
            if text:
                cleaned.append(text)
        return cleaned[:MAX_CHANNELS]

    @field_validator("low_quota", mode="before")
    @classmethod
    def _coerce_low_quota(cls, value: object) -> bool:
        # Only an explicit false-ish value disables low-quota mode.
        if value is None:
            return True
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() not in {"0", "false", "no", "off"}
        if isinstance(value, (int, float)):
            return bool(value)
        return True

    @classmethod
    def from_channels(
        cls, channels: Iterable[Any], *, low_quota: bool | None = True
    ) -> "TenantConfig":
        return cls.model_validate({"channels": list(channels), "lowQuota": low_quota})

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON document stored inside the token."""

        return {"channels": list(self.channels), "lowQuota": self.low_quota}


def to_b64url(text: str) -> str:
    """Encode UTF-8 text as unpadded URL-safe base64."""

    encoded = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def from_b64url(token: str) -> str:
    """Decode unpadded URL-safe base64 back into UTF-8 text.

    Raises ``ValueError`` for anything that is not strictly valid.
    """

    if not token or token.strip() != token or "=" in token:
        raise ValueError("Token is empty or padded")
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Token is not valid base64url") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("Token does not contain UTF-8 text") from exc


def encode_config(config: TenantConfig) -> str:
    """Serialise ``config`` into a deterministic URL-safe token."""

    document = json.dumps(
        config.to_payload(), ensure_ascii=False, separators=(",", ":")
    )
    return to_b64url(document)


def decode_config(token: str | None) -> TenantConfig | None:
    """Return the configuration encoded in ``token`` or ``None`` if invalid.

    This never raises: malformed base64, broken UTF-8, non-JSON payloads and
    payloads that are not JSON objects all come back as ``None``.
    """

    if not isinstance(token, str) or not token or len(token) > MAX_TOKEN_LENGTH:
        return None
    try:
        document = json.loads(from_b64url(token))
    except (ValueError, RecursionError):
        logger.debug("Rejected undecodable config token %.24s", token)
        return None
    if not isinstance(document, dict):
        return None
    try:
        return TenantConfig.model_validate(document)
    except ValidationError:
        logger.debug("Rejected config token with invalid payload %.24s", token)
        return None
