"""Documentation sections, pages and courses."""
