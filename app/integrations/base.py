from abc import ABC, abstractmethod
from typing import Optional, Any

from app.core.enums import AlertChannel


class ChannelTransport(ABC):
    """
    Delivers a fully formed notification payload to one external channel.

    Implementations never raise for delivery problems: a rejected payload, a
    network error or a timeout all come back as False. A missing endpoint or
    credential is reported through `configured` so callers can tell
    "nothing to send to" apart from "failed to send".
    """

    channel: AlertChannel

    def __init__(self, timeout: float):
        self.timeout = timeout

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when endpoint and credentials are present"""
        pass

    @abstractmethod
    async def send(self, payload: Any, *, timeout: Optional[float] = None) -> bool:
        """Deliver the payload; True when the remote end accepted it"""
        pass
