"""
Core modules for SRP Tracker.

This package contains the request lifecycle state machine, payout tier
table and calculator, and the dashboard statistics.
"""
