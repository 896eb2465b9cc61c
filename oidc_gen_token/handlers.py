"""
Request handlers for the login flow.
RedirectHandler sends the browser to the provider; CallbackHandler validates
state, exchanges the code, verifies the ID token and hands it to the
lifecycle policy.
"""
import html
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from fastapi import BackgroundTasks
from fastapi.responses import HTMLResponse, RedirectResponse

from oidc_gen_token.errors import (
    ForgeryError,
    ProtocolShapeError,
    ProviderError,
    VerificationError,
)
from oidc_gen_token.flow_state import AuthorizationRequest, FlowState
from oidc_gen_token.lifecycle import LifecyclePolicy

logger = logging.getLogger(__name__)


class Exchanger(Protocol):
    def exchange(self, code: str) -> dict: ...


class Verifier(Protocol):
    def verify(self, raw_id_token: str) -> dict: ...


TOKEN_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Token</title><style>
pre {{
 overflow-x: auto;
 white-space: pre-wrap;
 word-wrap: break-word;
}}</style></head>
<body>
  <h1>Token</h1><br />
  <pre>{token}</pre>
  <br /><a href="/">Get another token</a>
</body>
</html>"""


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
  <p><a href="/">Get another token</a></p>
</body>
</html>""",
        status_code=status_code,
    )


def _first(params: Mapping[str, str], name: str) -> str:
    """First value of a query parameter; repeated parameters do not override it."""
    getlist = getattr(params, "getlist", None)
    if getlist is not None:
        values = getlist(name)
        return values[0] if values else ""
    return params.get(name, "")


class RedirectHandler:
    def __init__(self, flow: FlowState, client_id: str, redirect_uri: str, scopes, authorization_endpoint: str):
        self.flow = flow
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = tuple(scopes)
        self.authorization_endpoint = authorization_endpoint

    def authorization_url(self) -> str:
        request = AuthorizationRequest(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=self.scopes,
            state=self.flow.expected_state,
        )
        return request.to_url(self.authorization_endpoint)

    def handle(self) -> RedirectResponse:
        return RedirectResponse(url=self.authorization_url(), status_code=302)


@dataclass
class CallbackResult:
    returned_state: str
    authorization_code: str
    raw_id_token: str | None = None
    verified: bool = False
    claims: dict[str, Any] = field(default_factory=dict)


class CallbackHandler:
    """
    AwaitingCallback -> StateValidated -> TokenExchanged -> TokenVerified -> Dispatched.
    Every failure ends only the current request; the next callback starts over.
    """

    def __init__(self, flow: FlowState, exchanger: Exchanger, verifier: Verifier, policy: LifecyclePolicy):
        self.flow = flow
        self.exchanger = exchanger
        self.verifier = verifier
        self.policy = policy

    def check_state(self, returned_state: str) -> None:
        if returned_state != self.flow.expected_state:
            raise ForgeryError(self.flow.expected_state, returned_state)

    def extract_id_token(self, token_response: Mapping[str, Any]) -> str:
        raw = token_response.get("id_token")
        if not isinstance(raw, str) or not raw:
            raise ProtocolShapeError("No id_token field in oauth2 token.")
        return raw

    def handle(self, params: Mapping[str, str], background_tasks: BackgroundTasks) -> HTMLResponse:
        result = CallbackResult(
            returned_state=_first(params, "state"),
            authorization_code=_first(params, "code"),
        )

        try:
            self.check_state(result.returned_state)
        except ForgeryError as e:
            logger.warning("%s", e)
            return _error_page(
                "state did not match",
                f"expected state [{e.expected}] but received [{e.received}]",
                400,
            )

        error = _first(params, "error")
        if error:
            logger.info("Provider returned error %s", error)
            return _error_page("Login error", _first(params, "error_description") or error, 400)

        try:
            token_response = self.exchanger.exchange(result.authorization_code)
        except ProviderError as e:
            logger.warning("Token exchange failed: %s", e)
            return _error_page("Token exchange failed", f"Failed to exchange token: {e}", 500)

        try:
            result.raw_id_token = self.extract_id_token(token_response)
        except ProtocolShapeError as e:
            logger.warning("%s Fields: %s", e, sorted(token_response))
            return _error_page("Token error", str(e), 500)

        try:
            result.claims = self.verifier.verify(result.raw_id_token)
        except VerificationError as e:
            logger.warning("ID token verification failed: %s", e)
            return _error_page("Token verification failed", f"Failed to verify ID Token: {e}", 500)
        result.verified = True

        background_tasks.add_task(self.policy.after_response, result.raw_id_token, result.claims)
        return HTMLResponse(TOKEN_PAGE.format(token=html.escape(result.raw_id_token)))
