"""Tessera certificate issuance backend."""

__version__ = "2.0.0"
