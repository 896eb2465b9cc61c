"""
Per-process flow state and authorization request helpers.
The state token is generated once at startup and compared against every callback.
"""
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import urlencode

STATE_ALPHABET = string.ascii_letters


class RunMode(str, Enum):
    DISPLAY = "display"
    PERSIST = "persist"
    CONTINUE = "continue"


def generate_state(length: int = 16) -> str:
    """Unpredictable letters-only token for CSRF protection; returned in callback."""
    return "".join(secrets.choice(STATE_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class FlowState:
    expected_state: str
    mode: RunMode = RunMode.DISPLAY
    token_file: Path | None = None

    @classmethod
    def create(cls, mode: RunMode, token_file: Path | None = None, length: int = 16) -> "FlowState":
        return cls(expected_state=generate_state(length), mode=mode, token_file=token_file)


@dataclass(frozen=True)
class AuthorizationRequest:
    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...]
    state: str

    def to_url(self, authorization_endpoint: str) -> str:
        """Build the provider authorization URL with required params."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": self.state,
        }
        sep = "&" if "?" in authorization_endpoint else "?"
        return f"{authorization_endpoint}{sep}{urlencode(params)}"
