"""Core HR module — the employee record the entitlement engine reads and caches onto."""
