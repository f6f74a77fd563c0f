"""
Tests for payments app.

This package contains test modules for:
- test_commission.py: Commission split, fees and dispute adjustments
- test_escrow_service.py: Escrow stage tracker
- test_guard.py: Webhook idempotency guard
- test_verification.py: Webhook signature and source checks
- test_webhooks.py: Webhook handler and endpoint
- test_auto_approval.py: Auto-approval sweep
- test_views.py: Escrow and cron endpoints
- test_integration.py: End-to-end settlement

Usage:
    pytest payments/tests/
    pytest payments/tests/test_escrow_service.py
"""
