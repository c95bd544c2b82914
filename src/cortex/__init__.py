"""Cortex chat — persistence, prompt assembly, session, and events."""
