from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class CommandConfig:
    """How the external migration tool is invoked."""

    executable: str = "corb"
    secret_env_template: str = "CORB_{env}_PASSWORD"


@dataclass
class ServerConfig:
    """Bind address and access control for the HTTP API."""

    host: str = "127.0.0.1"
    port: int = 3001
    api_key: Optional[str] = None


@dataclass
class LoggingConfig:
    """Optional log file shared by the API server and the CLI."""

    file: Optional[str] = None


@dataclass
class PathsConfig:
    """Filesystem layout of the working directory."""

    root: Path
    projects_dir: Path
    env_dir: Path
    runs_dir: Path


@dataclass
class AppConfig:
    """Top level configuration consumed by the orchestrator, API and CLI."""

    paths: PathsConfig = field(default_factory=lambda: build_paths(Path.cwd()))
    command: CommandConfig = field(default_factory=CommandConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON serialisable copy of the config for display."""
        payload = asdict(self)
        payload["paths"] = {
            "root": str(self.paths.root),
            "projects_dir": str(self.paths.projects_dir),
            "env_dir": str(self.paths.env_dir),
            "runs_dir": str(self.paths.runs_dir),
        }
        payload["server"]["api_key"] = "***" if self.server.api_key else None
        return payload


def build_paths(root: Path) -> PathsConfig:
    """Construct the default filesystem layout under *root*."""
    root = Path(root)
    return PathsConfig(
        root=root,
        projects_dir=root / "projects",
        env_dir=root / "env",
        runs_dir=root / "runs",
    )


def load_config(path: Optional[Path]) -> AppConfig:
    """
    Load configuration from *path* if provided, otherwise use defaults rooted at
    the current directory.

    The configuration file is expected to be JSON. Unspecified fields fall back
    to the defaults baked into the dataclasses above.
    """
    config = AppConfig()
    if path is None:
        return config

    with Path(path).expanduser().open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    _apply_config_updates(config, data)
    return config


def _apply_config_updates(config: AppConfig, payload: Dict[str, Any]) -> None:
    """Update *config* in-place using keys from the *payload* dict."""
    if "paths" in payload:
        override = payload["paths"]
        root = Path(override.get("root", config.paths.root)).expanduser()
        paths = build_paths(root)
        if "projects_dir" in override:
            paths.projects_dir = Path(override["projects_dir"]).expanduser()
        if "env_dir" in override:
            paths.env_dir = Path(override["env_dir"]).expanduser()
        if "runs_dir" in override:
            paths.runs_dir = Path(override["runs_dir"]).expanduser()
        config.paths = paths

    if "command" in payload:
        for key, value in payload["command"].items():
            if hasattr(config.command, key):
                setattr(config.command, key, value)

    if "server" in payload:
        for key, value in payload["server"].items():
            if hasattr(config.server, key):
                setattr(config.server, key, value)

    if "logging" in payload:
        config.logging.file = payload["logging"].get("file", config.logging.file)
