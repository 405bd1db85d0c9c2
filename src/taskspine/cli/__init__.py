"""taskspine command-line interface."""
