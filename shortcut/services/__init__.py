"""
Services module for business logic separation.

This module contains service classes that encapsulate business logic
(accounts, feature gating, link creation, redirects, statistics, billing),
keeping it separate from API endpoints and database models.
"""
