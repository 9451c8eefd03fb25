"""Remote operation modules (internal)."""
