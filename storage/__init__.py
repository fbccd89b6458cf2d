"""SQLite persistence for work orders."""
