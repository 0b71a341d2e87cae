"""Entitlement balance engine: allocation, in-lieu and consumption ledgers."""
