"""Background jobs: the debounced auto-save timer."""
