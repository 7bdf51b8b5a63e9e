"""Kakeibo: AI-assisted bookkeeping helpers."""

__version__ = "0.1.0"
