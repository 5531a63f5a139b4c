"""Command-line interface for hfrelay."""
