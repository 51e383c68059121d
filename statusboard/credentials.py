"""
Credential lookup by configured variable name.

Integration configs name the variables that hold secrets
(``SERVICENOW_USERNAME``) rather than the secrets themselves. A resolver
turns those names into a complete username/password pair, or nothing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

import aiohttp

from statusboard.errors import CredentialsMissing
from statusboard.models import IntegrationConfig


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def basic_auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.username, self.password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


class CredentialResolver:
    """Maps variable names to secrets. Subclasses provide ``lookup``."""

    def lookup(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def resolve(self, username_var: str, password_var: str) -> Optional[Credentials]:
        """Return both values, or None if either is unset. Never partial."""
        username = self.lookup(username_var) if username_var else None
        password = self.lookup(password_var) if password_var else None
        if not username or not password:
            return None
        return Credentials(username=username, password=password)

    def require(self, config: IntegrationConfig) -> Credentials:
        creds = self.resolve(config.username_var, config.password_var)
        if creds is None:
            raise CredentialsMissing(
                f"{config.kind} credentials are not set "
                f"({config.username_var}/{config.password_var})"
            )
        return creds


class EnvCredentialResolver(CredentialResolver):
    """Reads secrets from an injected mapping, ``os.environ`` by default."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = os.environ if environ is None else environ

    def lookup(self, name: str) -> Optional[str]:
        return self._environ.get(name)
