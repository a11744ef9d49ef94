"""Integration modules for OAuth, credentials, and review platforms.

This package provides the OAuth handshake handler, credential encryption,
and the per-platform review adapters for Google and Meta.
"""
