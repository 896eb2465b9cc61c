"""
What happens to a verified ID token once the browser has its response:
display a notice, persist to disk and exit, or keep serving.
Policies run as background tasks, after the response has been sent.
"""
import logging
import os
import sys
import threading
from pathlib import Path

from oidc_gen_token.config import SHUTDOWN_GRACE_SECONDS
from oidc_gen_token.errors import ConfigurationError, PersistenceError
from oidc_gen_token.flow_state import FlowState, RunMode

logger = logging.getLogger(__name__)


class ShutdownController:
    """
    Shutdown signal for the HTTP frontend. The first request schedules a timer
    that cannot be cancelled; when it fires the attached uvicorn server is told
    to exit. A failure exit code replaces a pending success one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._fired = threading.Event()
        self._timer: threading.Timer | None = None
        self._pending_code: int | None = None
        self._server = None
        self.exit_code: int | None = None

    def attach(self, server) -> None:
        """Attach an object with a should_exit attribute (uvicorn.Server)."""
        self._server = server

    @property
    def requested(self) -> bool:
        return self._pending_code is not None

    def request_shutdown(self, exit_code: int = 0, delay: float = 0.0) -> None:
        with self._lock:
            if self._pending_code is not None and not (exit_code != 0 and self._pending_code == 0):
                return
            # An earlier timer stays scheduled; whichever fires first reads the latest code
            self._pending_code = exit_code
            self._timer = threading.Timer(delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            if self._fired.is_set():
                return
            self.exit_code = self._pending_code
            logger.info("Shutting down (exit code %s)", self.exit_code)
            if self._server is not None:
                self._server.should_exit = True
            self._fired.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until shutdown fires. Returns False on timeout."""
        return self._fired.wait(timeout)


class LifecyclePolicy:
    mode: RunMode

    def after_response(self, raw_id_token: str, claims: dict) -> None:
        raise NotImplementedError


class ContinuePolicy(LifecyclePolicy):
    """Daemon mode: keep serving until the process is stopped by hand."""

    mode = RunMode.CONTINUE

    def after_response(self, raw_id_token: str, claims: dict) -> None:
        logger.info("Issued ID token for sub=%s; still listening", claims.get("sub", "unknown"))


class DisplayPolicy(LifecyclePolicy):
    """One-shot mode: the token is on the page; tell the operator and stop guiding."""

    mode = RunMode.DISPLAY

    def after_response(self, raw_id_token: str, claims: dict) -> None:
        print("Done")


def write_token_file(path: Path, raw_id_token: str) -> None:
    """
    Write the raw token with owner-only permissions, replacing any previous
    content. Parent directories are created 0700. Single writer assumed: only
    one flow completes per operator action, so the file is not locked.
    """
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        os.fchmod(fd, 0o600)
        os.write(fd, raw_id_token.encode("utf-8"))
    finally:
        os.close(fd)


class PersistPolicy(LifecyclePolicy):
    """Save the token and exit after a short grace delay so the response can flush."""

    mode = RunMode.PERSIST

    def __init__(
        self,
        token_file: Path,
        controller: ShutdownController,
        grace_seconds: float = SHUTDOWN_GRACE_SECONDS,
    ):
        self.token_file = token_file
        self.controller = controller
        self.grace_seconds = grace_seconds

    def save(self, raw_id_token: str) -> None:
        try:
            write_token_file(self.token_file, raw_id_token)
        except OSError as e:
            raise PersistenceError(f"Failed to create token file {self.token_file}: {e}") from e

    def after_response(self, raw_id_token: str, claims: dict) -> None:
        try:
            self.save(raw_id_token)
        except PersistenceError as e:
            # The browser already has its 200; only the operator can see this
            print(str(e), file=sys.stderr)
            logger.error("%s", e)
            self.controller.request_shutdown(exit_code=1)
            return
        print(f"Token saved on to {self.token_file}")
        print("Done")
        self.controller.request_shutdown(exit_code=0, delay=self.grace_seconds)


def policy_for(flow: FlowState, controller: ShutdownController) -> LifecyclePolicy:
    """The flow's run mode and token file decide what follows a verified login."""
    if flow.mode is RunMode.CONTINUE:
        return ContinuePolicy()
    if flow.mode is RunMode.PERSIST:
        if flow.token_file is None:
            raise ConfigurationError("Persist mode needs a token file")
        return PersistPolicy(flow.token_file, controller)
    return DisplayPolicy()
