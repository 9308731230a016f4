"""Runtime internals shared across the pipeline and daemon."""
