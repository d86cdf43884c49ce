"""Session management module for doomstream.

Public API:
    SessionRegistry -- Fixed-capacity pool of session slots
    SessionHandle -- Generation-guarded borrow of an active session
    ProcessSupervisor -- Spawns and reaps the external program
    SessionJanitor -- Background reaping and idle eviction
"""

from doomstream.session.janitor import SessionJanitor
from doomstream.session.models import (
    ResourceError,
    Session,
    SessionHandle,
    SessionNotFound,
    SessionState,
)
from doomstream.session.registry import SessionRegistry
from doomstream.session.supervisor import ExitedProcess, ProcessSupervisor, SpawnError

__all__ = [
    "ExitedProcess",
    "ProcessSupervisor",
    "ResourceError",
    "Session",
    "SessionHandle",
    "SessionJanitor",
    "SessionNotFound",
    "SessionRegistry",
    "SessionState",
    "SpawnError",
]
