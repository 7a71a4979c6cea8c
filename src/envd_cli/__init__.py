"""envd command-line interface."""
