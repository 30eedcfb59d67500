"""
Credential Record Schema
========================

Bounded Context: Pairing Credential

The credential a device obtains during pairing. Persisted as a JSON object
``{"apiKey": "<string>"}``, one record per device id.

Absent vs. corrupt:
- An absent record is represented by ``None`` (the device is unpaired).
- A record that exists but cannot be decoded raises CorruptCredentialError.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict


class CorruptCredentialError(ValueError):
    """Raised when a stored credential record cannot be decoded."""
    pass


@dataclass(frozen=True)
class Credential:
    """
    Immutable pairing credential.

    Attributes:
        api_key: Secret used as the MQTT password of the authenticated session

    Example:
        >>> cred = Credential(api_key="secret123")
        >>> cred.to_json()
        '{"apiKey": "secret123"}'
    """
    api_key: str

    def __post_init__(self):
        if not isinstance(self.api_key, str):
            raise TypeError(f"api_key must be str, got {type(self.api_key).__name__}")

    def __repr__(self) -> str:
        return f"Credential(api_key='{mask_secret(self.api_key)}')"

    def to_dict(self) -> Dict[str, str]:
        """Serialize to the persisted record shape."""
        return {"apiKey": self.api_key}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> 'Credential':
        """
        Deserialize from the persisted record shape.

        Raises:
            CorruptCredentialError: If data is not ``{"apiKey": <str>}``
        """
        if not isinstance(data, dict):
            raise CorruptCredentialError(
                f"Credential record must be an object, got {type(data).__name__}"
            )
        api_key = data.get("apiKey")
        if not isinstance(api_key, str):
            raise CorruptCredentialError("Credential record has no string 'apiKey'")
        return cls(api_key=api_key)

    @classmethod
    def from_json(cls, raw: str) -> 'Credential':
        """
        Deserialize from a JSON string.

        Raises:
            CorruptCredentialError: If raw is not valid JSON or has the wrong shape
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise CorruptCredentialError(f"Credential record is not valid JSON: {e}") from e
        return cls.from_dict(data)


def mask_secret(secret: str) -> str:
    """Replace every character with ``*`` for log output."""
    return "*" * len(secret)
