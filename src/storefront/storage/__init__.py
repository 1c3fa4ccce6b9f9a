"""Persistence: stores, tenant config source, shard routing."""
