"""Shift settings, processor shifts and the auto-closer."""
