"""Comment threads attached to pages."""
