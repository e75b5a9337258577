"""Bridge runtime: cycle engine, lifecycle controller and operator console."""
