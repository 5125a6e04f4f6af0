"""KochoCORS — a single-endpoint forwarding proxy that injects CORS headers."""

__version__ = "1.0.0"
