"""
OpenID Connect discovery: resolve the provider's endpoints from
<issuer>/.well-known/openid-configuration.
"""
import logging
from dataclasses import dataclass, field

import httpx

from oidc_gen_token.config import HTTP_TIMEOUT
from oidc_gen_token.errors import ProviderError

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    id_token_signing_alg_values_supported: tuple[str, ...] = field(default=("RS256",))

    @classmethod
    def from_document(cls, doc: dict) -> "ProviderMetadata":
        missing = [
            k for k in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri") if not doc.get(k)
        ]
        if missing:
            raise ProviderError(f"discovery document missing {', '.join(missing)}")
        algs = doc.get("id_token_signing_alg_values_supported") or ["RS256"]
        return cls(
            issuer=doc["issuer"],
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            jwks_uri=doc["jwks_uri"],
            id_token_signing_alg_values_supported=tuple(algs),
        )


def discover(issuer: str, timeout: float = HTTP_TIMEOUT) -> ProviderMetadata:
    """
    Fetch and validate the discovery document. The advertised issuer must
    match the configured one (trailing slash ignored).
    """
    url = issuer.rstrip("/") + WELL_KNOWN_PATH
    try:
        r = httpx.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    except httpx.HTTPError as e:
        raise ProviderError(f"discovery request to {url} failed: {e}") from e

    if r.status_code != 200:
        raise ProviderError(f"discovery request to {url} returned {r.status_code}: {r.text[:200]}")
    try:
        doc = r.json()
    except ValueError as e:
        raise ProviderError(f"discovery document at {url} is not JSON") from e
    if not isinstance(doc, dict):
        raise ProviderError(f"discovery document at {url} is not a JSON object")

    metadata = ProviderMetadata.from_document(doc)
    if metadata.issuer.rstrip("/") != issuer.rstrip("/"):
        raise ProviderError(f"issuer did not match the issuer returned by provider, expected {issuer!r} got {metadata.issuer!r}")
    logger.debug("Discovered provider %s (token endpoint %s)", metadata.issuer, metadata.token_endpoint)
    return metadata
