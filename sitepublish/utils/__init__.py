"""Shared utilities: logging, configuration, deadlines, retries, AWS sessions."""
