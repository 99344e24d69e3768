"""Password login, session cookies and role checks."""
