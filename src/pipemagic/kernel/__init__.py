"""Pipeline engine kernel: graph model, validation, scheduling, caching, execution."""
