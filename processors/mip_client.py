"""
Caller side of the slab projection engine.

Owns one ``MIPWorker``, correlates responses to ``concurrent.futures.Future``
objects by request id, caches finished planes per ``(z, slab_half_size)`` and
prefetches neighbouring planes in batches.
"""

import itertools
import logging
import queue
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from core.base import VolumeData
from core.errors import NotInitializedError
from processors.mip_worker import (
    MIPWorker,
    make_message,
    MSG_INIT,
    MSG_READY,
    MSG_COMPUTE_SLICE,
    MSG_COMPUTE_BATCH,
    MSG_SLICE_RESULT,
    MSG_BATCH_COMPLETE,
    MSG_ERROR,
)
from config import MIP_CLIENT_CACHE_ENTRIES, MIP_PREFETCH_RANGE

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, int]

_STOP = object()


class MIPClient:
    """
    Request/response front end for a projection worker.

    Usage:
        client = MIPClient()
        client.init_volume(volume, series_id="1.2.3").result(timeout=30)
        plane = client.compute_slice(z=40, slab_half_size=5).result(timeout=30)
        client.prefetch(40, 10, 5, volume.data.shape[0])
        client.terminate()
    """

    def __init__(
        self,
        worker_factory: Callable[[], MIPWorker] = MIPWorker,
        cache_entries: int = MIP_CLIENT_CACHE_ENTRIES,
    ):
        self._worker_factory = worker_factory
        self._worker: Optional[MIPWorker] = None
        self._reader: Optional[threading.Thread] = None
        self._cache_entries = cache_entries

        self._lock = threading.Lock()
        self._request_ids = itertools.count(1)
        self._pending: Dict[int, Future] = {}
        self._cache: "OrderedDict[CacheKey, np.ndarray]" = OrderedDict()
        self._init_future: Optional[Future] = None
        self._series_id: Optional[str] = None
        self._ready = False
        # Results for requests issued before the latest init belong to an older volume
        self._first_valid_request = 1

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready

    def _ensure_worker(self) -> MIPWorker:
        if self._worker is not None:
            return self._worker
        worker = self._worker_factory()
        worker.start()
        self._worker = worker
        self._reader = threading.Thread(
            target=self._read_responses, args=(worker,), name="mip-client-reader", daemon=True
        )
        self._reader.start()
        return worker

    def init_volume(self, volume: VolumeData, series_id: Optional[str] = None) -> Future:
        """
        Send a private copy of ``volume`` to the worker.

        Returns a future resolved when the worker acknowledges with ``ready``.
        Re-initialising with the ``series_id`` already loaded is a no-op.
        """
        with self._lock:
            if series_id and series_id == self._series_id and self._ready:
                done: Future = Future()
                done.set_result(None)
                return done

            worker = self._ensure_worker()
            self._ready = False
            self._series_id = series_id
            self._cache.clear()
            self._first_valid_request = next(self._request_ids)
            self._init_future = Future()
            future = self._init_future

        cols, rows, slices = volume.dimensions
        logger.info("[MIPClient] Initialising worker with %dx%dx%d volume (series=%s)",
                    cols, rows, slices, series_id)
        worker.post(make_message(MSG_INIT, {
            "cols": cols,
            "rows": rows,
            "totalSlices": slices,
            "buffer": volume.copy_buffer(),
        }))
        return future

    def terminate(self) -> None:
        """Stop the worker and reject every outstanding request."""
        with self._lock:
            worker, reader = self._worker, self._reader
            self._worker, self._reader = None, None
            self._ready = False
            self._series_id = None
            self._cache.clear()
            pending = list(self._pending.values())
            self._pending.clear()
            init_future, self._init_future = self._init_future, None

        if worker is not None:
            worker.stop()
            worker.outbox.put(_STOP)
        if reader is not None:
            reader.join(timeout=5.0)

        for future in pending:
            if not future.done():
                future.set_exception(NotInitializedError("Worker terminated"))
        if init_future is not None and not init_future.done():
            init_future.set_exception(NotInitializedError("Worker terminated"))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def compute_slice(self, z: int, slab_half_size: int) -> Future:
        """
        Future resolving to the flat int16 projection plane for ``z``.

        Cached planes resolve immediately. The future fails with
        ``NotInitializedError`` when no volume is loaded.
        """
        future: Future = Future()
        key = (int(z), int(slab_half_size))
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                future.set_result(cached)
                return future

            if self._worker is None or not self._ready:
                future.set_exception(NotInitializedError("Worker not initialized"))
                return future

            request_id = next(self._request_ids)
            self._pending[request_id] = future
            worker = self._worker

        worker.post(make_message(MSG_COMPUTE_SLICE, {
            "z": key[0], "slabHalfSize": key[1], "requestId": request_id,
        }))
        return future

    def prefetch(
        self,
        center_z: int,
        prefetch_range: int = MIP_PREFETCH_RANGE,
        slab_half_size: int = 0,
        total_slices: int = 0,
    ) -> Optional[int]:
        """
        Queue uncached neighbours of ``center_z`` as one batch, nearest first.

        Returns the batch request id, or None when nothing needed computing.
        """
        with self._lock:
            if self._worker is None or not self._ready:
                return None

            indices: List[int] = []
            for d in range(1, prefetch_range + 1):
                above, below = center_z + d, center_z - d
                if above < total_slices and (above, slab_half_size) not in self._cache:
                    indices.append(above)
                if below >= 0 and (below, slab_half_size) not in self._cache:
                    indices.append(below)
            if not indices:
                return None

            request_id = next(self._request_ids)
            worker = self._worker

        logger.debug("[MIPClient] Prefetching %d planes around z=%d", len(indices), center_z)
        worker.post(make_message(MSG_COMPUTE_BATCH, {
            "indices": indices, "slabHalfSize": slab_half_size, "requestId": request_id,
        }))
        return request_id

    def get_cached(self, z: int, slab_half_size: int) -> Optional[np.ndarray]:
        with self._lock:
            return self._cache.get((int(z), int(slab_half_size)))

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    # ------------------------------------------------------------------
    # Response routing
    # ------------------------------------------------------------------

    def _read_responses(self, worker: MIPWorker) -> None:
        while True:
            message = worker.outbox.get()
            if message is _STOP:
                break
            self._dispatch(message)

    def _store(self, key: CacheKey, data: np.ndarray) -> None:
        self._cache[key] = data
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_entries:
            self._cache.popitem(last=False)

    def _dispatch(self, message) -> None:
        msg_type = message.get("type")
        payload = message.get("payload") or {}

        if msg_type == MSG_READY:
            with self._lock:
                self._ready = True
                future, self._init_future = self._init_future, None
            if future is not None and not future.done():
                future.set_result(None)
            return

        if msg_type == MSG_SLICE_RESULT:
            request_id = payload.get("requestId")
            data = payload["buffer"]
            with self._lock:
                if request_id is not None and request_id >= self._first_valid_request:
                    self._store((payload["z"], payload["slabHalfSize"]), data)
                future = self._pending.pop(request_id, None)
            if future is not None and not future.done():
                future.set_result(data)
            return

        if msg_type == MSG_BATCH_COMPLETE:
            logger.debug("[MIPClient] Batch %s complete", payload.get("requestId"))
            return

        if msg_type == MSG_ERROR:
            request_id = payload.get("requestId")
            error = NotInitializedError(payload.get("message", "Volume not initialized"), request_id)
            with self._lock:
                future = self._pending.pop(request_id, None) if request_id is not None else None
                if future is None and request_id is None:
                    # Init rejected by the worker
                    future, self._init_future = self._init_future, None
            if future is not None and not future.done():
                future.set_exception(error)
            else:
                logger.warning("[MIPClient] Worker error: %s", error)
            return

        logger.warning("[MIPClient] Ignoring unknown response type: %r", msg_type)
