"""Command-line interface for eventrelay."""
