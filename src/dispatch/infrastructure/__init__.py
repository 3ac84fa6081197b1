"""Dispatch infrastructure: ORM models, repository and provider gateway."""
