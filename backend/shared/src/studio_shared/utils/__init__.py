"""Utility helpers shared across the settlement services."""
