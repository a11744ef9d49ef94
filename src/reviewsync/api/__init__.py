"""HTTP API for OAuth handshakes and review sync."""
