"""Utilities package for the Gig Orders engine."""
