"""autodrive command-line interface."""
