"""Inbound REST adapter."""
