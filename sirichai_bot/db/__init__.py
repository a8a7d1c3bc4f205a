"""Database connection and schema setup."""
