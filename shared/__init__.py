"""
Shared Kernel

Building blocks reused by every Dokkerr app: value objects for money and
date ranges, UUID/short-id model base, encrypted fields, photo storage,
API error envelope and the health check.
"""
