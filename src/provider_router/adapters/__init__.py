"""Adapters between the router and the outside world."""
