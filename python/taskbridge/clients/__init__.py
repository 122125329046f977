from taskbridge.clients.letta_client import LettaClient
from taskbridge.clients.matrix_client import MatrixClient
from taskbridge.clients.opencode_client import OpenCodeClient

__all__ = ["LettaClient", "MatrixClient", "OpenCodeClient"]
