"""
Authorization code exchange at the provider token endpoint.
Single attempt: the code is single-use, so there is no retry.
"""
import logging
from urllib.parse import quote_plus

import httpx

from oidc_gen_token.config import HTTP_TIMEOUT
from oidc_gen_token.errors import ProviderError

logger = logging.getLogger(__name__)


class TokenExchanger:
    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def exchange(self, code: str) -> dict:
        """POST the code with client_secret_basic auth. Returns the token response dict."""
        try:
            r = httpx.post(
                self.token_endpoint,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                },
                # client_secret_basic: both values are form-encoded before base64
                auth=(quote_plus(self.client_id), quote_plus(self._client_secret)),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(str(e) or e.__class__.__name__) from e

        if r.status_code != 200:
            err = {}
            if r.headers.get("content-type", "").startswith("application/json"):
                try:
                    err = r.json()
                except ValueError:
                    err = {}
            if not isinstance(err, dict):
                err = {}
            err_desc = err.get("error_description") or err.get("error") or r.text or "token request failed"
            logger.debug("Token endpoint returned %s: %s", r.status_code, err_desc)
            raise ProviderError(f"{r.status_code} {err_desc}")

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError("token response is not JSON") from e
        if not isinstance(data, dict):
            raise ProviderError("token response is not a JSON object")
        return data
