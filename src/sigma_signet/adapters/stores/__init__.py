"""Config, ephemeral and account stores."""

from sigma_signet.adapters.stores.memory import (
    InMemoryAccountRepository,
    InMemoryConfigStore,
    InMemoryEphemeralStore,
)
from sigma_signet.adapters.stores.postgres import (
    PostgresAccountRepository,
    PostgresConfigStore,
    PostgresEphemeralStore,
)

__all__ = [
    "InMemoryAccountRepository",
    "InMemoryConfigStore",
    "InMemoryEphemeralStore",
    "PostgresAccountRepository",
    "PostgresConfigStore",
    "PostgresEphemeralStore",
]
