"""Rich progress display for command-line uploads.

Two tiers:

* **Overall** -- bytes across the whole batch
* **Per file** -- bytes for each file, with its final status
"""

from __future__ import annotations

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from presigned_upload.models import FileRef, UploadProgress


class UploadProgressTracker:
    """Byte-level Rich progress tracker for a batch of uploads.

    Usage::

        with UploadProgressTracker(files) as tracker:
            await uploader.upload_many(
                files,
                on_each_progress=tracker.file_progress,
                on_overall_progress=tracker.overall_progress,
            )
    """

    def __init__(self, files: list[FileRef]) -> None:
        self._files = files
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            TextColumn("{task.fields[status]}", style="dim"),
        )
        self._overall_task: TaskID | None = None
        self._file_tasks: dict[int, TaskID] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the Rich progress display."""
        self._progress.start()
        self._overall_task = self._progress.add_task(
            "[green]Overall",
            total=sum(f.size for f in self._files),
            status="starting...",
        )
        for index, file in enumerate(self._files):
            self._file_tasks[index] = self._progress.add_task(
                f"[blue]{_truncate_name(file.name)}",
                total=file.size,
                status="queued",
            )

    def stop(self) -> None:
        """Stop the Rich progress display."""
        self._progress.stop()

    def __enter__(self) -> UploadProgressTracker:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def file_progress(self, index: int, progress: UploadProgress) -> None:
        task = self._file_tasks.get(index)
        if task is None:
            return
        status = "done" if progress.done else f"{progress.percent}%"
        self._progress.update(task, completed=progress.bytes_sent, status=status)

    def overall_progress(self, progress: UploadProgress) -> None:
        if self._overall_task is None:
            return
        self._progress.update(
            self._overall_task,
            completed=progress.bytes_sent,
            status=f"{progress.percent}%",
        )

    def file_failed(self, index: int, reason: str) -> None:
        task = self._file_tasks.get(index)
        if task is not None:
            self._progress.update(task, status=f"[red]FAIL[/red] {reason}")


def _truncate_name(name: str, max_len: int = 40) -> str:
    """Truncate a file name for display, keeping its end."""
    if len(name) <= max_len:
        return name
    return "..." + name[-(max_len - 3) :]
