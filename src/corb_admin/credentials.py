"""Resolve the process environment, including the target environment's secret."""
from __future__ import annotations

import logging
import os
import re
from typing import Dict, Mapping, Optional


LOGGER = logging.getLogger("corb_admin.credentials")

DEFAULT_TEMPLATE = "CORB_{env}_PASSWORD"

# "01-TEST", "3_ACCEPT", "10.PROD" -> ordering prefix before the real name
_ORDERING_PREFIX = re.compile(r"^\d+[-_.\s]+")
_INVALID_VAR_CHARS = re.compile(r"[^A-Z0-9_]")


def normalize_environment(environment: str) -> str:
    """Strip a leading ordering prefix so ``01-TEST`` and ``TEST`` share a slot."""
    stripped = _ORDERING_PREFIX.sub("", environment.strip(), count=1)
    return stripped or environment.strip()


def secret_variable_name(environment: str, template: str = DEFAULT_TEMPLATE) -> str:
    name = _INVALID_VAR_CHARS.sub("_", normalize_environment(environment).upper())
    return template.format(env=name)


class CredentialResolver:
    """Build the environment for the external tool from the orchestrator's own."""

    def __init__(
        self,
        template: str = DEFAULT_TEMPLATE,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._template = template
        self._base_env = base_env

    def variable_for(self, environment: str) -> str:
        return secret_variable_name(environment, self._template)

    def resolve_environment(self, environment: str, operator_secret: Optional[str] = None) -> Dict[str, str]:
        """
        Return a copy of the ambient environment.

        The secret variable is overridden only when *operator_secret* is a
        non-empty string; otherwise any pre-provisioned value is kept as is.
        """
        env = dict(os.environ if self._base_env is None else self._base_env)
        variable = self.variable_for(environment)
        if operator_secret:
            env[variable] = operator_secret
            LOGGER.debug("Using operator-supplied secret for %s", variable)
        elif variable in env:
            LOGGER.debug("Using pre-provisioned secret from %s", variable)
        else:
            LOGGER.warning("No secret available in %s for environment %s", variable, environment)
        return env
