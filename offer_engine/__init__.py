"""Offer negotiation engine."""
