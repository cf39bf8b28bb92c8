"""Settings, logging and database session helpers."""
