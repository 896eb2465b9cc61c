"""
oidc-gen-token configuration.
Defaults come from the environment; flags override them, except that
OIDC_CLIENT_ID / OIDC_CLIENT_SECRET always win over the flags so secrets can
stay out of the process list. The environment is read in load_settings, not
at import.
"""
import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from oidc_gen_token.errors import ConfigurationError
from oidc_gen_token.flow_state import RunMode

# Local listener; the redirect URI registered at the provider must match
HOST = "127.0.0.1"
DEFAULT_PORT = 5556
CALLBACK_PATH = "/auth/callback"

# Where --save-token writes the ID token (OIDC_TOKEN_FILE overrides)
DEFAULT_TOKEN_FILE = Path.home() / ".oidc" / "token"

SCOPES = ("openid", "profile", "email")

# Length of the anti-forgery state token
STATE_LENGTH = 16

# Seconds between writing the token file and stopping the listener
SHUTDOWN_GRACE_SECONDS = 1.0

# Timeout for discovery, token and JWKS requests
HTTP_TIMEOUT = 10.0

LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    issuer: str
    client_id: str
    client_secret: str
    port: int = DEFAULT_PORT
    save_token: bool = False
    daemon: bool = False
    token_file: Path = DEFAULT_TOKEN_FILE
    log_level: str = LOG_LEVEL

    @property
    def redirect_uri(self) -> str:
        return f"http://{HOST}:{self.port}{CALLBACK_PATH}"

    @property
    def mode(self) -> RunMode:
        if self.daemon:
            return RunMode.CONTINUE
        if self.save_token:
            return RunMode.PERSIST
        return RunMode.DISPLAY

    def validate(self) -> "Settings":
        """Raise ConfigurationError for missing or contradictory options."""
        if not self.issuer:
            raise ConfigurationError("Must provide an issuer")
        if not self.client_id:
            raise ConfigurationError("Must provide a client id")
        if not self.client_secret:
            raise ConfigurationError("Must provide a client secret")
        if self.daemon and self.save_token:
            raise ConfigurationError("Cannot set both daemon and saveToken")
        return self


def build_parser(env: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    parser = argparse.ArgumentParser(
        prog="oidc-gen-token",
        description="Obtain an OpenID Connect ID token through a local browser login.",
    )
    parser.add_argument("--client-id", default="", help="Token issuer client id")
    parser.add_argument("--client-secret", default="", help="Token issuer client secret")
    parser.add_argument(
        "--issuer",
        default=env.get("OIDC_ISSUER", ""),
        help="Token issuer, e.g. https://accounts.google.com",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Local port number for the oidc-gen-token web url location (default {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--save-token",
        action="store_true",
        help="Save the token to a file. Default is not to save",
    )
    parser.add_argument(
        "--token-file",
        default=env.get("OIDC_TOKEN_FILE") or str(DEFAULT_TOKEN_FILE),
        help="Name of the file to save token",
    )
    parser.add_argument(
        "--daemon",
        action="store_true",
        help="Run continuously. Cannot be used with --save-token",
    )
    parser.add_argument(
        "--log-level",
        default=env.get("OIDC_LOG_LEVEL") or LOG_LEVEL,
        help="Logging level (DEBUG, INFO, WARNING, ...)",
    )
    return parser


def _port_from_env(env: Mapping[str, str]) -> int:
    raw = env.get("OIDC_PORT", "").strip()
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"OIDC_PORT must be a port number, got {raw!r}") from None


def load_settings(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Parse flags and apply environment defaults and overrides. Raises
    ConfigurationError for a malformed OIDC_PORT; otherwise does not
    validate, call Settings.validate() before opening any listener.
    """
    env = os.environ if environ is None else environ
    args = build_parser(env).parse_args(argv)
    port = args.port if args.port is not None else _port_from_env(env)
    client_id = env.get("OIDC_CLIENT_ID") or args.client_id
    client_secret = env.get("OIDC_CLIENT_SECRET") or args.client_secret
    return Settings(
        issuer=args.issuer.strip(),
        client_id=client_id,
        client_secret=client_secret,
        port=port,
        save_token=args.save_token,
        daemon=args.daemon,
        token_file=Path(args.token_file).expanduser(),
        log_level=args.log_level.upper(),
    )
