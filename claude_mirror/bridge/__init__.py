"""Hook-side plumbing: socket protocol, session guards and terminal access."""

from .approvals import ApprovalCorrelator, PendingApproval
from .dedup import EchoFilter
from .injector import TerminalInjector, TmuxInjector
from .reaper import StaleSessionReaper
from .socket_server import SocketServer
from .thread_lock import ThreadCreationLock
from .types import ApprovalOutcome, BridgeMessage, EventType, SessionStatus

__all__ = [
    "ApprovalCorrelator",
    "ApprovalOutcome",
    "BridgeMessage",
    "EchoFilter",
    "EventType",
    "PendingApproval",
    "SessionStatus",
    "SocketServer",
    "StaleSessionReaper",
    "TerminalInjector",
    "ThreadCreationLock",
    "TmuxInjector",
]
