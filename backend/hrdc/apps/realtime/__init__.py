"""Realtime package.

Keep package import side-effect free so tooling (e.g. Alembic model import)
does not require the MQTT client.
"""

__all__: list[str] = []
