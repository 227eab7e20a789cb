"""SQLite persistence: schema, migrations and pagination."""
