"""
Routes de l'API de statut.
"""
from . import health, relay, supervisor

__all__ = ["health", "relay", "supervisor"]
