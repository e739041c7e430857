"""Utility helpers shared across the sync client."""
