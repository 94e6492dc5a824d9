"""Bonus grid, platform commission, monthly plans and bonus payments."""
