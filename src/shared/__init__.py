"""
Shared Layer - Cross-Cutting Concerns
Configuration, logging, database plumbing and API error envelope
"""
