"""Resolve the single best downloadable media URL for an Instagram post, carousel slide or story."""

__version__ = "1.0.0"
