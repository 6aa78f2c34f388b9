"""Bulk CSV import of delivery projects with preview / commit reconciliation."""

__version__ = "0.1.0"
