"""Connection settings with documented defaults and environment overrides.

Resolution order for every field: explicit argument, then environment
variable, then default.

========================  ====================  ================
Field                     Environment variable  Default
========================  ====================  ================
backend                   ``DBVERBS_BACKEND``   ``mysql``
host                      ``DBVERBS_HOST``      ``localhost``
port                      ``DBVERBS_PORT``      backend default
database                  ``DBVERBS_DATABASE``  ``databaseName``
username                  ``DBVERBS_USER``      ``userName``
password                  ``DBVERBS_PASSWORD``  empty
========================  ====================  ================

The default credentials exist for local development only.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_BACKEND = "mysql"
DEFAULT_HOST = "localhost"
DEFAULT_DATABASE = "databaseName"
DEFAULT_USERNAME = "userName"
DEFAULT_PASSWORD = ""


def _env(name: str, value: str | None, default: str) -> str:
    if value is not None:
        return value
    return os.environ.get(name, default)


@dataclass(frozen=True)
class ConnectionSettings:
    """Everything needed to open one connection.

    For the ``sqlite`` backend, ``database`` is the file path (or
    ``":memory:"``) and the network fields are ignored.
    """

    backend: str = DEFAULT_BACKEND
    host: str = DEFAULT_HOST
    database: str = DEFAULT_DATABASE
    username: str = DEFAULT_USERNAME
    password: str = field(default=DEFAULT_PASSWORD, repr=False)
    port: int | None = None

    @classmethod
    def resolve(
        cls,
        host: str | None = None,
        database: str | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        backend: str | None = None,
        port: int | None = None,
    ) -> ConnectionSettings:
        """Build settings from arguments, falling back to the environment."""
        if port is None:
            raw_port = os.environ.get("DBVERBS_PORT")
            if raw_port:
                try:
                    port = int(raw_port)
                except ValueError:
                    raise ValueError(
                        f"DBVERBS_PORT must be an integer, got {raw_port!r}"
                    ) from None
        return cls(
            backend=_env("DBVERBS_BACKEND", backend, DEFAULT_BACKEND).lower(),
            host=_env("DBVERBS_HOST", host, DEFAULT_HOST),
            database=_env("DBVERBS_DATABASE", database, DEFAULT_DATABASE),
            username=_env("DBVERBS_USER", username, DEFAULT_USERNAME),
            password=_env("DBVERBS_PASSWORD", password, DEFAULT_PASSWORD),
            port=port,
        )

    @property
    def is_networked(self) -> bool:
        """Whether the backend talks to a server (i.e. is not SQLite)."""
        return self.backend != "sqlite"

    @property
    def uses_default_credentials(self) -> bool:
        """Whether the development-only username or password is in use."""
        return self.username == DEFAULT_USERNAME or self.password == DEFAULT_PASSWORD
