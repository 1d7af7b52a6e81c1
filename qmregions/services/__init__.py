"""Structure file I/O and report formatting."""
