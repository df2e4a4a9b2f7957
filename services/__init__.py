"""Service implementations for the plan domain."""
