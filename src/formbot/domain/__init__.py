"""Domain layer: form template, validators, and event types.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
