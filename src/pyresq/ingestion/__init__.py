"""Ingestion helpers.

Coerce loose GraphQL payload values into typed fields.
"""
