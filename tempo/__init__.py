"""Tempo: timeline scheduling and recurrence engine."""
