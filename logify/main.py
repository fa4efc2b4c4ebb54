"""
Name: ASGI Entrypoint (logify.main)

Responsibilities:
  - Re-export the FastAPI app for ASGI servers and tooling
  - Keep this module side-effect free beyond importing logify.api.main

Collaborators:
  - logify.api.main: module that constructs and exposes the FastAPI app
"""

from logify.api.main import app

__all__ = ["app"]
