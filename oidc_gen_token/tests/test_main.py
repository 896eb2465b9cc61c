"""Tests for the command-line entry point (no listener is started)."""
from unittest.mock import patch

from oidc_gen_token.errors import ProviderError
from oidc_gen_token.main import main, serve

ARGS = ["--issuer", "https://example.test", "--client-id", "abc", "--client-secret", "s3cret"]


def test_both_modes_rejected_before_listening(capsys, monkeypatch):
    monkeypatch.delenv("OIDC_CLIENT_ID", raising=False)
    monkeypatch.delenv("OIDC_CLIENT_SECRET", raising=False)
    with patch("oidc_gen_token.main.serve") as serve:
        rc = main(ARGS + ["--save-token", "--daemon"])
    assert rc == 1
    serve.assert_not_called()
    assert "Cannot set both daemon and saveToken" in capsys.readouterr().err


def test_missing_issuer(capsys, monkeypatch):
    monkeypatch.delenv("OIDC_CLIENT_ID", raising=False)
    monkeypatch.delenv("OIDC_CLIENT_SECRET", raising=False)
    with patch("oidc_gen_token.main.serve") as serve:
        rc = main(["--issuer", "", "--client-id", "abc", "--client-secret", "s3cret"])
    assert rc == 1
    serve.assert_not_called()
    assert "Must provide an issuer" in capsys.readouterr().err


def test_discovery_failure_is_fatal(monkeypatch):
    monkeypatch.delenv("OIDC_CLIENT_ID", raising=False)
    monkeypatch.delenv("OIDC_CLIENT_SECRET", raising=False)
    with patch("oidc_gen_token.main.discover", side_effect=ProviderError("unreachable")), patch(
        "oidc_gen_token.main.uvicorn.Server"
    ) as server:
        rc = main(ARGS)
    assert rc == 1
    server.assert_not_called()


def test_valid_config_serves(monkeypatch):
    monkeypatch.delenv("OIDC_CLIENT_ID", raising=False)
    monkeypatch.delenv("OIDC_CLIENT_SECRET", raising=False)
    with patch("oidc_gen_token.main.serve", return_value=0) as serve:
        rc = main(ARGS + ["--port", "6000"])
    assert rc == 0
    settings = serve.call_args.args[0]
    assert settings.port == 6000
    assert settings.redirect_uri == "http://127.0.0.1:6000/auth/callback"


def test_serve_wires_shutdown_to_server(settings, metadata):
    class FakeServer:
        should_exit = False

        def __init__(self, config):
            self.config = config

        def run(self):
            # Stand-in for a completed save-mode login
            controller = self.config.app.state.controller
            controller.request_shutdown(exit_code=0, delay=0)
            assert controller.wait(timeout=2)
            assert self.should_exit is True

    with patch("oidc_gen_token.main.discover", return_value=metadata), patch(
        "oidc_gen_token.main.uvicorn.Server", FakeServer
    ):
        assert serve(settings) == 0


def test_malformed_port_env_rejected_before_listening(capsys, monkeypatch):
    monkeypatch.setenv("OIDC_PORT", "not-a-port")
    with patch("oidc_gen_token.main.serve") as serve:
        rc = main(ARGS)
    assert rc == 1
    serve.assert_not_called()
    assert "OIDC_PORT" in capsys.readouterr().err
