"""Transactional outbox and background worker."""
