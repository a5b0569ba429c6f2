"""SQLAlchemy models for persisted oracle state."""
