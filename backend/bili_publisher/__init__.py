"""Bilibili publish bridge: QR login, encrypted cookie vault, biliup reconciliation."""

__version__ = "0.1.0"
