"""Shared utilities for CampusCare services."""
from .pii import hash_pii, fingerprint_text, configure_pii_salt
from .event_loop import BackgroundLoop

__all__ = ["hash_pii", "fingerprint_text", "configure_pii_salt", "BackgroundLoop"]
