"""
Tests for notifications app.

This package contains test modules for:
- test_services.py: NotificationService queueing
- test_tasks.py: Delivery task against the external service

Usage:
    pytest notifications/tests/
    pytest notifications/tests/test_services.py
"""
