"""Push-stream bookkeeping and framing."""

from .frames import encode_comment, encode_event
from .registry import READY_MESSAGE, StreamHandle, StreamRegistry

__all__ = ["READY_MESSAGE", "StreamHandle", "StreamRegistry", "encode_comment", "encode_event"]
