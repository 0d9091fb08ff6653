"""OIDC gateway: authorization code login with locally issued tokens."""

__version__ = "0.1.0"
