"""
Backend package for the community newsboard.

This package provides a FastAPI application for news posts, comments, likes
and the team popularity poll, with database, storage and identity
abstractions so the service can run against hosted backends or entirely in
memory.
"""
