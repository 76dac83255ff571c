"""Parsing module - dashboard HTML to structured data."""

from .dashboard import parse_dashboard

__all__ = ["parse_dashboard"]
