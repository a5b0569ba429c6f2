"""Database package: engine, sessions and the score repository."""
