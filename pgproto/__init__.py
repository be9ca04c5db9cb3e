"""Low level PostgreSQL wire protocol: client messages, authentication, escaping, binary values and catalog readers."""

__version__ = "0.6.0"
__all__ = ["catalog", "escape", "frontend", "password", "sasl", "scalar", "structured", "wire"]