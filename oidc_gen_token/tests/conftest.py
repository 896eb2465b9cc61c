"""
Shared fixtures: provider metadata, RSA signing key + JWKS, and fake
exchanger/verifier collaborators that record their calls.
"""

import time
from pathlib import Path
from unittest.mock import patch

import jwt
import pytest
from jwt import PyJWKClient
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key

from oidc_gen_token.config import Settings
from oidc_gen_token.discovery import ProviderMetadata
from oidc_gen_token.errors import VerificationError

ISSUER = "https://example.test"
CLIENT_ID = "abc"
CLIENT_SECRET = "s3cret"
PORT = 5556


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def make_key_and_jwks(kid: str = "test-key"):
    key = generate_private_key(65537, 2048, default_backend())
    pub = key.public_key().public_numbers()
    jwk = {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS256",
        "use": "sig",
        "n": _int_to_b64url(pub.n),
        "e": _int_to_b64url(pub.e),
    }
    return key, {"keys": [jwk]}


def make_id_token(key, *, sub="user1", aud=CLIENT_ID, iss=ISSUER, exp_delta=3600, kid="test-key"):
    now = int(time.time())
    payload = {"sub": sub, "iss": iss, "aud": aud, "exp": now + exp_delta, "iat": now}
    return jwt.encode(payload, key, algorithm="RS256", headers={"kid": kid})


def mock_jwks(jwks: dict):
    """Serve the given JWKS from PyJWKClient without any network access."""
    return patch.object(PyJWKClient, "fetch_data", return_value=jwks)


class FakeExchanger:
    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {}
        self.error = error
        self.codes = []

    def exchange(self, code):
        self.codes.append(code)
        if self.error is not None:
            raise self.error
        return self.response


class FakeVerifier:
    def __init__(self, claims=None, error=None):
        self.claims = claims if claims is not None else {"sub": "user1"}
        self.error = error
        self.tokens = []

    def verify(self, raw_id_token):
        self.tokens.append(raw_id_token)
        if self.error is not None:
            raise self.error
        return self.claims


@pytest.fixture
def metadata():
    return ProviderMetadata(
        issuer=ISSUER,
        authorization_endpoint=f"{ISSUER}/authorize",
        token_endpoint=f"{ISSUER}/token",
        jwks_uri=f"{ISSUER}/keys",
    )


@pytest.fixture
def key_and_jwks():
    return make_key_and_jwks()


@pytest.fixture
def settings(tmp_path: Path):
    return Settings(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        port=PORT,
        token_file=tmp_path / "oidc" / "token",
    )


@pytest.fixture
def failing_verifier():
    return FakeVerifier(error=VerificationError("Invalid audience"))
