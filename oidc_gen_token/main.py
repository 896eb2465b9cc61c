"""
oidc-gen-token: local OpenID Connect login that prints or saves an ID token.
GET / redirects to the provider, GET /auth/callback receives the code.
Default port 5556.
"""
import logging
import sys

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request

from oidc_gen_token.config import HOST, SCOPES, STATE_LENGTH, Settings, load_settings
from oidc_gen_token.discovery import ProviderMetadata, discover
from oidc_gen_token.errors import ConfigurationError, ProviderError
from oidc_gen_token.exchange import TokenExchanger
from oidc_gen_token.flow_state import FlowState
from oidc_gen_token.handlers import CallbackHandler, Exchanger, RedirectHandler, Verifier
from oidc_gen_token.lifecycle import ShutdownController, policy_for
from oidc_gen_token.verifier import IdTokenVerifier

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    metadata: ProviderMetadata,
    exchanger: Exchanger,
    verifier: Verifier,
    controller: ShutdownController,
    flow: FlowState | None = None,
) -> FastAPI:
    """Build the app. The flow state is fixed here and shared by every request."""
    if flow is None:
        flow = FlowState.create(settings.mode, settings.token_file, length=STATE_LENGTH)
    redirect_handler = RedirectHandler(
        flow,
        client_id=settings.client_id,
        redirect_uri=settings.redirect_uri,
        scopes=SCOPES,
        authorization_endpoint=metadata.authorization_endpoint,
    )
    callback_handler = CallbackHandler(flow, exchanger, verifier, policy_for(flow, controller))

    app = FastAPI(title="oidc-gen-token", version="0.1.0")
    app.state.flow = flow
    app.state.controller = controller

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "oidc_gen_token"}

    @app.get("/")
    def login():
        """Redirect to the provider authorization endpoint."""
        return redirect_handler.handle()

    @app.get("/auth/callback")
    def auth_callback(request: Request, background_tasks: BackgroundTasks):
        """Provider redirect target; see CallbackHandler."""
        return callback_handler.handle(request.query_params, background_tasks)

    return app


def serve(settings: Settings) -> int:
    """Discover the provider, run the listener until shutdown, return the exit code."""
    metadata = discover(settings.issuer)
    verifier = IdTokenVerifier(
        issuer=metadata.issuer,
        client_id=settings.client_id,
        jwks_uri=metadata.jwks_uri,
        algorithms=metadata.id_token_signing_alg_values_supported,
    )
    exchanger = TokenExchanger(
        metadata.token_endpoint,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_uri=settings.redirect_uri,
    )
    controller = ShutdownController()
    app = create_app(settings, metadata, exchanger, verifier, controller)

    server = uvicorn.Server(
        uvicorn.Config(app, host=HOST, port=settings.port, log_level=settings.log_level.lower())
    )
    controller.attach(server)
    logger.info("listening on http://%s:%s/", HOST, settings.port)
    server.run()
    return controller.exit_code or 0


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings(argv).validate()
    except ConfigurationError as e:
        print(e, file=sys.stderr)
        return 1
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return serve(settings)
    except ProviderError as e:
        logger.error("Provider discovery failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
