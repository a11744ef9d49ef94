"""OAuth handshake handling for review platforms."""

from reviewsync.integrations.oauth.manager import HandshakeResult, OAuthManager, error_reason
from reviewsync.integrations.oauth.state import OAuthStateCodec

__all__ = ["HandshakeResult", "OAuthManager", "OAuthStateCodec", "error_reason"]
