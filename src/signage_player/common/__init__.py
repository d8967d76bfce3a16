"""
Shared infrastructure for the signage player: logging, configuration,
device identity, error types and the backend REST client.
"""
