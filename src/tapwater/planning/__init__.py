"""Desinfection decisions, session placement and plan assembly."""
