"""Shared primitives: clock, error taxonomy, collaborator contracts, event bus."""
