"""
CoRB Admin - run orchestration for batch data-migration jobs.

This package exposes the run orchestrator (dry/wet phase sequencing,
status tracking, cancellation), its HTTP API and the command line entrypoint.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("corb-admin")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
