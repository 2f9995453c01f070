"""Helpers for configuration parsing and startup output."""
