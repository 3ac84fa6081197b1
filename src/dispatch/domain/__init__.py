"""Dispatch domain: entities, value objects, rules and exceptions."""
