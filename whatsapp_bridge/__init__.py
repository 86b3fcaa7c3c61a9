"""Relay WhatsApp Web state changes into NATS subjects."""

__version__ = "0.1.0"

__all__ = ["__version__"]
