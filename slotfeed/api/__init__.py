"""Read-only HTTP status layer over the checkpoint store."""
