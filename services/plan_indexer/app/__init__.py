"""Plan indexer service: projects plan change events into the search index."""
