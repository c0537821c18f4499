"""
Local DICOM series source.

Stands in for the metadata source and the byte-fetch collaborator when a
series lives in a folder on disk (CLI runs, tests, offline review).
"""

import concurrent.futures
import dataclasses
import logging
import os
from typing import Callable, Dict, List, Optional

import pydicom

from core.base import BaseInstanceSource, Instance
from core.errors import FetchFailureError
from loaders.dicom_utils import find_dicom_files, instance_from_dataset, validate_path
from config import LOADER_MAX_WORKERS

logger = logging.getLogger(__name__)


class DicomFolderSource(BaseInstanceSource):
    """
    Series source backed by one folder of DICOM files.

    Headers are read once (in parallel, pixels skipped) on ``scan``; pixel
    bytes are only read from disk when ``fetch`` is called for an instance.
    """

    def __init__(self, folder_path: str, max_workers: int = LOADER_MAX_WORKERS):
        self.folder_path = folder_path
        self.max_workers = max_workers
        self._instances: Optional[List[Instance]] = None
        self._paths: Dict[str, str] = {}

    def scan(self, callback: Optional[Callable[[int, str], None]] = None) -> List[Instance]:
        logger.info("[DicomSource] Scanning series folder: %s", self.folder_path)
        if callback: callback(0, "Scanning directory...")

        validate_path(self.folder_path)
        files = find_dicom_files(self.folder_path)
        if callback: callback(10, f"Found {len(files)} files. Reading headers...")

        def read_header(args):
            idx, path = args
            try:
                return idx, path, pydicom.dcmread(path, stop_before_pixels=True)
            except Exception as exc:
                logger.warning("[DicomSource] Skipping unreadable file %s: %s", path, exc)
                return idx, path, None

        total = len(files)
        results = [None] * total
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(read_header, (i, f)) for i, f in enumerate(files)]
            completed = 0
            for future in concurrent.futures.as_completed(futures):
                idx, path, ds = future.result()
                results[idx] = (path, ds)
                completed += 1
                if callback and completed % 20 == 0:
                    callback(10 + int(90 * completed / total), f"Reading header {completed}/{total}...")

        instances: List[Instance] = []
        paths: Dict[str, str] = {}
        for order, (path, ds) in enumerate(r for r in results if r is not None):
            if ds is None:
                continue
            instance = instance_from_dataset(ds, sort_key=getattr(ds, "InstanceNumber", None) or order)
            if not instance.instance_uid:
                instance = dataclasses.replace(instance, instance_uid=os.path.basename(path))
            if instance.instance_uid in paths:
                logger.warning("[DicomSource] Duplicate SOPInstanceUID %s in %s", instance.instance_uid, path)
                continue
            instances.append(instance)
            paths[instance.instance_uid] = path

        self._instances = instances
        self._paths = paths
        logger.info("[DicomSource] %d instances ready", len(instances))
        if callback: callback(100, f"{len(instances)} instances ready.")
        return list(instances)

    def instances(self) -> List[Instance]:
        if self._instances is None:
            self.scan()
        return list(self._instances)

    def fetch(self, instance_uid: str) -> bytes:
        if self._instances is None:
            self.scan()
        path = self._paths.get(instance_uid)
        if path is None:
            raise FetchFailureError(instance_uid, "unknown instance")
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as exc:
            raise FetchFailureError(instance_uid, str(exc)) from exc
