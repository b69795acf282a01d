"""Concurrency backends: fork-based shared-memory pool and isolated Dask worker processes."""
