"""Scheduled trigger workers."""
