from __future__ import annotations

from typing import Callable

from edusync.core.logging import DOMAIN_CONNECTIVITY, get_domain_logger
from edusync.core.settings import settings

logger = get_domain_logger(__name__, DOMAIN_CONNECTIVITY)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Single owner of the process-wide online/offline flag.

    Seeded once from the platform reachability signal and afterwards changed only by
    `handle_online` / `handle_offline`, which the platform adapter calls on transitions.
    Every other component reads the flag through `get_online_status()`.
    """

    def __init__(self, initial: bool | Callable[[], bool] | None = None):
        if initial is None:
            initial = settings.start_online
        self._online = bool(initial() if callable(initial) else initial)
        self._listeners: list[ConnectivityListener] = []
        self.transitions = 0

    def get_online_status(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def handle_online(self) -> None:
        self.set_online(True)

    def handle_offline(self) -> None:
        self.set_online(False)

    def set_online(self, online: bool) -> bool:
        """Apply a platform transition event. Returns True when the flag actually changed."""
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        self.transitions += 1
        logger.info("Network: %s", "Online" if online else "Offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:  # noqa: BLE001
                logger.exception("Connectivity listener failed online=%s", online)
        return True
