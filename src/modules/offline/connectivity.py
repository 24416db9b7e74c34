import logging
import threading
from typing import Callable, List

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ConnectivityMonitor:
    """Estado online/offline del dispositivo; avisa al volver la conexión."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        with self._lock:
            was_online = self._online
            self._online = online
            listeners = list(self._listeners)

        if online and not was_online:
            logger.info("Conexión restablecida")
            for listener in listeners:
                try:
                    listener()
                except Exception:
                    logger.exception("Fallo un listener de reconexión")
        elif was_online and not online:
            logger.info("Sin conexión")

    def check_health(self, http: httpx.Client, path: str = "/health") -> bool:
        """Consulta el endpoint de salud y actualiza el estado según la respuesta."""
        try:
            online = http.get(path).is_success
        except httpx.TransportError:
            online = False
        self.set_online(online)
        return online
