"""Pipeline document I/O."""
