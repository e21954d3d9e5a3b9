"""Mini README: Network interfaces for the grant ledger.

Exports the FastAPI application factory serving the JSON API and the live
balance websocket. The core ledger never imports from here.
"""

from .web_app import create_application

__all__ = ["create_application"]
