"""
Slab projection (MIP) engine.

The engine runs on its own thread and talks to callers only through two
queues. Messages are plain dicts ``{"type": ..., "payload": {...}}``:

    init          {cols, rows, totalSlices, buffer}       -> ready
    computeSlice  {z, slabHalfSize, requestId}            -> sliceResult {z, slabHalfSize, requestId, buffer}
    computeBatch  {indices, slabHalfSize, requestId}      -> N x sliceResult, then batchComplete {requestId}

Compute requests received before ``init`` are answered with
``error {message, requestId}``. So is any request that fails while being
handled (a missing field, say); the engine then carries on with the next
message. The engine copies the volume buffer on init and hands out a fresh
array with every result, so no memory is shared with the caller.
"""

import logging
import queue
import threading
from typing import Any, Dict, Iterator, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

MSG_INIT = "init"
MSG_READY = "ready"
MSG_COMPUTE_SLICE = "computeSlice"
MSG_COMPUTE_BATCH = "computeBatch"
MSG_SLICE_RESULT = "sliceResult"
MSG_BATCH_COMPLETE = "batchComplete"
MSG_ERROR = "error"

NOT_INITIALIZED_MESSAGE = "Volume not initialized"

_STOP = object()

Message = Dict[str, Any]


def make_message(msg_type: str, payload: Optional[Dict[str, Any]] = None) -> Message:
    return {"type": msg_type, "payload": payload or {}}


def _message_type(message) -> Any:
    return message.get("type") if isinstance(message, dict) else type(message).__name__


def _request_id(message) -> Optional[Any]:
    if not isinstance(message, dict):
        return None
    payload = message.get("payload")
    return payload.get("requestId") if isinstance(payload, dict) else None


def compute_slab_projection(
    volume: np.ndarray,
    cols: int,
    rows: int,
    total_slices: int,
    z: int,
    slab_half_size: int,
) -> np.ndarray:
    """
    Per-pixel maximum over slices ``[z - slab_half_size, z + slab_half_size]``.

    The slab is clamped to the volume. ``slab_half_size == 0`` returns an exact
    copy of slice ``z``. A slab lying completely past the last slice yields a
    zero plane.

    Args:
        volume: Flat or (slices, rows, cols) int16 buffer.

    Returns:
        Flat int16 array of length ``cols * rows``.
    """
    plane_size = cols * rows
    stack = np.asarray(volume).reshape(total_slices, plane_size)

    z_start = max(0, z - slab_half_size)
    z_end = min(total_slices - 1, z + slab_half_size)

    if z_start >= total_slices:
        return np.zeros(plane_size, dtype=np.int16)

    result = stack[z_start].astype(np.int16, copy=True)
    if z_end > z_start:
        np.maximum(result, stack[z_start + 1:z_end + 1].max(axis=0), out=result)
    return result


class MIPWorker:
    """
    Background engine answering projection requests in receipt order.

    ``handle`` is the synchronous core and can be driven directly; ``start``
    runs it on a daemon thread fed by ``inbox`` and answering on ``outbox``.
    """

    def __init__(self, name: str = "mip-worker"):
        self.inbox: "queue.Queue[Any]" = queue.Queue()
        self.outbox: "queue.Queue[Message]" = queue.Queue()
        self._name = name
        self._thread: Optional[threading.Thread] = None

        self._volume: Optional[np.ndarray] = None
        self.cols = 0
        self.rows = 0
        self.total_slices = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._volume is not None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "MIPWorker":
        if self.is_running:
            return self
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug("[MIPWorker] Started thread %s", self._name)
        return self

    def post(self, message: Message) -> None:
        self.inbox.put(message)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        if self._thread is None:
            return
        self.inbox.put(_STOP)
        self._thread.join(timeout)
        self._thread = None
        logger.debug("[MIPWorker] Stopped thread %s", self._name)

    def _run(self) -> None:
        while True:
            message = self.inbox.get()
            if message is _STOP:
                break
            try:
                for response in self.handle(message):
                    self.outbox.put(response)
            except Exception as exc:
                # Report the failure and keep serving later requests
                logger.exception("[MIPWorker] Failed to handle %r", _message_type(message))
                self.outbox.put(make_message(MSG_ERROR, {
                    "message": f"{type(exc).__name__}: {exc}",
                    "requestId": _request_id(message),
                }))

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def handle(self, message: Message) -> Iterator[Message]:
        """Process one request, yielding its responses in emission order."""
        msg_type = message.get("type")
        payload = message.get("payload") or {}

        if msg_type == MSG_INIT:
            yield from self._handle_init(payload)
        elif msg_type == MSG_COMPUTE_SLICE:
            yield from self._handle_compute_slice(payload)
        elif msg_type == MSG_COMPUTE_BATCH:
            yield from self._handle_compute_batch(payload)
        else:
            logger.warning("[MIPWorker] Ignoring unknown message type: %r", msg_type)

    def _handle_init(self, payload: Dict[str, Any]) -> List[Message]:
        cols = int(payload["cols"])
        rows = int(payload["rows"])
        total = int(payload["totalSlices"])
        buffer = payload["buffer"]

        if isinstance(buffer, np.ndarray):
            data = np.array(buffer, dtype=np.int16, copy=True).ravel()
        else:
            data = np.frombuffer(bytes(buffer), dtype=np.int16).copy()

        expected = cols * rows * total
        if data.size != expected:
            self._volume = None
            message = f"Volume buffer holds {data.size} voxels, expected {expected}"
            logger.error("[MIPWorker] %s", message)
            return [make_message(MSG_ERROR, {"message": message, "requestId": payload.get("requestId")})]

        self._volume = data
        self.cols, self.rows, self.total_slices = cols, rows, total
        logger.info("[MIPWorker] Volume ready: %dx%dx%d", cols, rows, total)
        return [make_message(MSG_READY)]

    def _not_initialized(self, request_id) -> List[Message]:
        logger.warning("[MIPWorker] Request %s received before init", request_id)
        return [make_message(MSG_ERROR, {"message": NOT_INITIALIZED_MESSAGE, "requestId": request_id})]

    def _slice_result(self, z: int, slab_half_size: int, request_id) -> Message:
        buffer = compute_slab_projection(
            self._volume, self.cols, self.rows, self.total_slices, z, slab_half_size
        )
        return make_message(MSG_SLICE_RESULT, {
            "z": z,
            "slabHalfSize": slab_half_size,
            "requestId": request_id,
            "buffer": buffer,
        })

    def _handle_compute_slice(self, payload: Dict[str, Any]) -> List[Message]:
        request_id = payload.get("requestId")
        if not self.is_ready:
            return self._not_initialized(request_id)
        return [self._slice_result(int(payload["z"]), int(payload["slabHalfSize"]), request_id)]

    def _handle_compute_batch(self, payload: Dict[str, Any]) -> Iterator[Message]:
        request_id = payload.get("requestId")
        if not self.is_ready:
            yield from self._not_initialized(request_id)
            return
        slab = int(payload["slabHalfSize"])
        for z in payload.get("indices", []):
            yield self._slice_result(int(z), slab, request_id)
        yield make_message(MSG_BATCH_COMPLETE, {"requestId": request_id})
