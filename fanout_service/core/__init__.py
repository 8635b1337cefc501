"""Core building blocks: database base classes, settings and exceptions."""
