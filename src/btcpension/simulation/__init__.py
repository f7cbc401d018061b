"""Single-user and treasury-growth simulators."""
