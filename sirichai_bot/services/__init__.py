"""Service layer: persistence, remote APIs and LINE messaging."""
