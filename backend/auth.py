"""
Credential verification for mutating endpoints.

The edge device authenticates with a shared secret in the X-API-Key header.
Verification sits behind the CredentialVerifier protocol so a stronger
scheme can be plugged in without touching the routes or the pipeline.
"""
import hmac
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from errors import Unauthorized

API_KEY_HEADER = "x-api-key"


@dataclass(frozen=True)
class Principal:
    name: str


class CredentialVerifier(Protocol):
    def verify(self, request: Request) -> Principal:
        """Return the caller's identity or raise Unauthorized."""
        ...


class ApiKeyVerifier:
    """Compares the X-API-Key header against a configured secret."""

    def __init__(self, api_key: str, principal: str = "edge-device"):
        if not api_key:
            raise ValueError("API key must not be empty")
        self._api_key = api_key.encode()
        self._principal = Principal(principal)

    def verify(self, request: Request) -> Principal:
        supplied = request.headers.get(API_KEY_HEADER)
        if not supplied or not hmac.compare_digest(supplied.encode(), self._api_key):
            raise Unauthorized()
        return self._principal


def require_principal(request: Request) -> Principal:
    """FastAPI dependency: authenticate with the verifier installed on the app."""
    verifier: CredentialVerifier = request.app.state.verifier
    return verifier.verify(request)
