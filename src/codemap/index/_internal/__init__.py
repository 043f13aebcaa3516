"""Internal implementation of the index. Not a public API."""
