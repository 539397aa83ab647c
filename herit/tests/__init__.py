"""Application-level tests."""
