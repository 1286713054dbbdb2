"""mcbridge command-line interface."""
