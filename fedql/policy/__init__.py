"""Role-based access control and row-level security."""
