"""Process execution, de-duplication, auto-refresh and the service facade."""
