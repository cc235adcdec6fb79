"""Reference tools bundled with the gateway."""

from .echo import run as echo
from .ping import run as ping

__all__ = ["echo", "ping"]
