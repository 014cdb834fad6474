"""
Progress events for long-running operations

Each scan, install or verify call gets its own EventChannel. Subscribers
(a GUI, the CLI, a test) connect to the channel's Qt signal and receive
typed event objects in emission order. Closing the channel drops all
subscribers and silences any later publish().
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
from PyQt5.QtCore import QObject, pyqtSignal


@dataclass
class OutputEvent:
    """A line of command output or a status message"""
    kind: str  # 'info', 'normal', 'success', 'error', 'warning'
    text: str


@dataclass
class CommandProgress:
    """A command in a fallback chain is about to run"""
    current: int
    total: int
    command: str

    @property
    def percentage(self) -> int:
        return round(self.current / self.total * 100) if self.total else 100


@dataclass
class VerifyProgress:
    """Verification of one dependency started or finished"""
    current: int
    total: int
    name: str
    status: str  # 'verifying', 'success', 'failed'
    result: Any = None


@dataclass
class ScanProgress:
    """Environment or update scan state change"""
    manager: str
    stage: str  # 'started', 'finished', 'failed'
    count: int = 0
    message: str = ""


class EventChannel(QObject):
    """Ordered, closable stream of progress events"""
    event = pyqtSignal(object)

    def __init__(self, name: str = ""):
        super().__init__()
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, handler: Callable[[Any], None]):
        """Connect a handler; it is called synchronously for each event"""
        self.event.connect(handler)

    def publish(self, event: Any):
        if self._closed:
            return
        self.event.emit(event)

    def close(self):
        """Stop delivering events"""
        if self._closed:
            return
        self._closed = True
        try:
            self.event.disconnect()
        except TypeError:
            # No subscribers were connected
            pass


def publish(channel: Optional[EventChannel], event: Any):
    """Publish to an optional channel"""
    if channel is not None:
        channel.publish(event)
