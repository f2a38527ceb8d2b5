"""Freelance escrow deliverable service."""
