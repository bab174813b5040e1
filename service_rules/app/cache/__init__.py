"""
Cache package for Rules Service.

Provides a Redis-backed cache of active rule snapshots per
organization/property scope, invalidated on every rule mutation.
"""
