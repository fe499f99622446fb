"""migrata command-line interface."""
