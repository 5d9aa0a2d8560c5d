"""Ports (Protocols) and the shared application state."""
