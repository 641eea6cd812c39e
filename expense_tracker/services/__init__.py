"""External service integrations (document store, vision models)."""
