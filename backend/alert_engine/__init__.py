"""Alert Engine - lease expiration and debt maturity alerting service."""

__version__ = "1.0.0"
