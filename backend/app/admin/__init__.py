"""Admin-only account overview (user list and counts)."""
