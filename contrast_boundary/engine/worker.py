import copy
import logging
import queue
import threading
from typing import Callable, Optional

from contrast_boundary.engine.protocol import handle_request, ready_message

logger = logging.getLogger(__name__)

MessageSink = Callable[[dict], None]


class BoundaryWorker:
    """
    Background boundary calculator reachable only through messages.

    Requests are posted into an inbox queue and answered, in order, through the
    ``on_message`` callback from the worker's own thread. The first message a
    worker ever emits is the ready signal.
    """

    def __init__(self, on_message: MessageSink, name: str = "BoundaryWorker") -> None:
        self._on_message = on_message
        self._name = name
        self._inbox: "queue.Queue[Optional[dict]]" = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        # Wake the blocking get(); a computation already running is allowed to finish.
        self._inbox.put(None)
        if self._thread:
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def post(self, message: dict) -> None:
        # Deep copy: the worker must never see a caller-owned object.
        self._inbox.put(copy.deepcopy(message))

    def _emit(self, message: dict) -> None:
        try:
            self._on_message(message)
        except Exception:
            # A failing consumer must not take the worker thread down with it.
            logger.exception("Boundary worker message handler failed (id=%s)", message.get("id"))

    def _run(self) -> None:
        self._emit(ready_message())
        while not self._stop.is_set():
            message = self._inbox.get()
            if message is None:
                continue
            self._emit(handle_request(message))
