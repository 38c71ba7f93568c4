"""Socket-level components: the accept loop and the connection wrapper."""

from .connection import Connection, ConnectionState
from .supervisor import ConnectionSupervisor

__all__ = ["Connection", "ConnectionState", "ConnectionSupervisor"]
