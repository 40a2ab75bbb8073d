"""Vendor adapters feeding observations into the health engine."""
