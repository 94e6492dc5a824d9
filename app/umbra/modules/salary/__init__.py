"""Hourly rate settings and salary requests."""
