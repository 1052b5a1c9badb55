"""PTY layer — the wrapped agent's pseudo-terminal and the user's real one.

The proxy owns the child and relays bytes; the real terminal owns raw mode,
cursor visibility, keyboard input and resize signals.
"""

from anton.pty.buffer import OutputBuffer
from anton.pty.proxy import LaunchError, ProxyStatus, PTYProxy
from anton.pty.subscription import Subscription
from anton.pty.terminal import RealTerminal

__all__ = [
    "LaunchError",
    "OutputBuffer",
    "ProxyStatus",
    "PTYProxy",
    "RealTerminal",
    "Subscription",
]
