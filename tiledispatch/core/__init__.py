"""
Core dispatcher module.

Resolves an execution plan from configuration and host capability, drives the
selected concurrency backend over every tile, and combines the per-tile
results into one aggregate.
"""
