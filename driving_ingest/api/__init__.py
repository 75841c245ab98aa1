"""Routers HTTP de consulta y comandos."""
