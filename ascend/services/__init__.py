"""Business logic services.

Modules are imported directly (``from ..services.activity_service import
...``) to keep the service and websocket packages free of import cycles.
"""
