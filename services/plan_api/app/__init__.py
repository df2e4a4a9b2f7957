"""Plan API service: conditional reads and writes of plan aggregates."""
