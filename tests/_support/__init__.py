"""Test support utilities for drainpool tests.

Helpers that are not fixtures but are shared across test modules.
"""
