"""Callback handshake, notification intake and attendee change detection."""
