"""omnihook command-line interface."""
