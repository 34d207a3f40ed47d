# floodpoints/export.py
"""
Export job handles.

submit_* calls register a job and return right away. The pipeline only
prints the job id; a caller that needs the file polls status() (or, for
local jobs, calls wait()).
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from floodpoints.records import to_frame

_WORKER = ThreadPoolExecutor(max_workers=1, thread_name_prefix="floodpoints-export")


@dataclass
class ExportTask(ABC):
    task_id: str
    description: str
    folder: str
    file_name: str
    file_format: str = "CSV"

    @property
    def destination(self) -> str:
        return f"{self.folder}/{self.file_name}.{self.file_format.lower()}"

    @abstractmethod
    def status(self) -> str:
        """Job state: RUNNING / COMPLETED / FAILED locally, the Earth Engine task state otherwise."""


@dataclass
class LocalExportTask(ExportTask):
    path: Path = None
    future: Future = field(default=None, repr=False)

    @property
    def destination(self) -> str:
        return str(self.path)

    def status(self) -> str:
        if not self.future.done():
            return "RUNNING"
        return "FAILED" if self.future.exception() is not None else "COMPLETED"

    def wait(self, timeout=None) -> Path:
        """Block until the file is written; re-raises the writer's exception."""
        self.future.result(timeout=timeout)
        return self.path


def _write_csv(points, columns, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".part")
    to_frame(points, columns).to_csv(tmp, index=False)
    tmp.replace(path)
    return path


def submit_local_csv(points, columns, exports_dir, folder, file_name, description) -> LocalExportTask:
    path = Path(exports_dir) / folder / f"{file_name}.csv"
    fut = _WORKER.submit(_write_csv, list(points), list(columns), path)
    return LocalExportTask(
        task_id=f"LOCAL_{uuid.uuid4().hex[:16].upper()}",
        description=description,
        folder=folder,
        file_name=file_name,
        path=path,
        future=fut,
    )
