"""ReviewSync - external review synchronization and integration credentials.

Completes OAuth handshakes with third-party review platforms, keeps their
credentials encrypted at rest, and pulls new reviews into a deduplicated
local store.
"""

__version__ = "0.1.0"
