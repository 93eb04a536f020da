"""Diagnostics helpers."""
