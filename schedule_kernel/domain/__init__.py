"""Pure domain types for the schedule kernel (zero I/O)."""
