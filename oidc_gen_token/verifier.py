"""
ID token verification via the provider JWKS.
Checks signature, iss, aud (our client id) and exp; returns the claims.
"""
import logging

import jwt
from jwt import PyJWKClient

from oidc_gen_token.config import HTTP_TIMEOUT
from oidc_gen_token.errors import VerificationError

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


class IdTokenVerifier:
    def __init__(
        self,
        issuer: str,
        client_id: str,
        jwks_uri: str,
        algorithms: list[str] | tuple[str, ...] = ("RS256",),
    ):
        self.issuer = issuer
        self.client_id = client_id
        self.jwks_uri = jwks_uri
        # "none" is never acceptable for an ID token
        self.algorithms = [a for a in algorithms if a.lower() != "none"] or ["RS256"]
        self._jwks_client: PyJWKClient | None = None

    def get_jwks_client(self) -> PyJWKClient:
        # PyJWKClient caches the JWK set and keys
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(
                uri=self.jwks_uri,
                cache_jwk_set=True,
                lifespan=300,
                timeout=int(HTTP_TIMEOUT),
            )
        return self._jwks_client

    def verify(self, raw_id_token: str) -> dict:
        """Raise VerificationError on any signature or claim problem."""
        try:
            signing_key = self.get_jwks_client().get_signing_key_from_jwt(raw_id_token)
            return jwt.decode(
                raw_id_token,
                signing_key.key,
                algorithms=self.algorithms,
                audience=self.client_id,
                issuer=self.issuer,
                options={
                    "verify_exp": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise VerificationError("Token expired") from e
        except jwt.InvalidAudienceError as e:
            raise VerificationError("Invalid audience") from e
        except jwt.InvalidIssuerError as e:
            raise VerificationError("Invalid issuer") from e
        except jwt.PyJWKClientError as e:
            logger.debug("JWKS lookup failed: %s", e)
            raise VerificationError(f"Signing key lookup failed: {e}") from e
        except jwt.PyJWTError as e:
            logger.debug("ID token verification failed: %s", e)
            raise VerificationError(str(e) or "Token verification failed") from e
