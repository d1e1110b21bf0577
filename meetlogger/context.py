"""Application context: the runtime paths every service is built from.

Services and routers receive this object instead of individual path strings,
so tests can point a whole app at a temporary directory.
"""

from __future__ import annotations

import os


class AppContext:
    """Holds all runtime directory paths for the application."""

    def __init__(
        self,
        *,
        cwd: str,
        data_dir: str,
        config_path: str,
    ) -> None:
        self._cwd = cwd
        self._data_dir = data_dir
        self._config_path = config_path
        self._app_dir = os.path.dirname(__file__)

    @property
    def data_dir(self) -> str:
        return self._data_dir

    # ── Derived data paths ─────────────────────────────────────────────

    @property
    def store_path(self) -> str:
        """Durable key-value store: session logs, history, API key."""
        return os.path.join(self.data_dir, "store.json")

    @property
    def artifacts_dir(self) -> str:
        return os.path.join(self.data_dir, "artifacts")

    @property
    def config_path(self) -> str:
        return self._config_path

    # ── App-relative paths (never change) ──────────────────────────────

    @property
    def prompts_dir(self) -> str:
        return os.path.join(self._app_dir, "prompts")

    # ── Logs (stay in cwd, not in data_dir) ────────────────────────────

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    # ── Helpers ────────────────────────────────────────────────────────

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.data_dir, self.artifacts_dir, self.logs_dir):
            os.makedirs(d, exist_ok=True)
