"""
Tests for toolkit app.

This package contains test modules for:
- test_validators.py: Ghana phone validation and phone masking

Usage:
    pytest toolkit/tests/
"""
