"""Subscription records, upstream administration and renewal."""
