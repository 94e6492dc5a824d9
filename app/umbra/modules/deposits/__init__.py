"""Processor deposits."""
