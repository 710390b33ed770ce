"""Home Library - Services Package

This package contains service modules for external integrations:
- Open Library ISBN metadata lookup
"""
