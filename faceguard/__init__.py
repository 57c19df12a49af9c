"""Face access-control service: button-triggered face registration and verification."""

__version__ = "1.0.0"
