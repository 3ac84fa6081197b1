"""Dispatch application layer: selection, claims, the engine and trigger runners."""
