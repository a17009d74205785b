"""Core utilities: errors, exceptions, security."""
