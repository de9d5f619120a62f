"""Thin clients for the upstream provider (tokens, resources, subscriptions)."""
