"""Services: metrics aggregation, score lifecycle coordination and scheduling."""
