"""Clubhouse room booking, availability and poker waitlist engine."""
