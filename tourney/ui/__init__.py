"""Terminal input, event plumbing and renderers."""
