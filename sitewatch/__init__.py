"""Device health classification and aggregation for a fleet of network sites.

This package contains the business logic and domain models,
isolated from vendor APIs and storage for easy testing and reasoning.
"""
