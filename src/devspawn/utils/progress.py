"""Progress reporting interface.

The pipeline reports what it is doing through a :class:`ProgressReporter`;
the CLI supplies an implementation that draws spinners. Nothing in the core
writes to the terminal directly.
"""

from contextlib import contextmanager


class ProgressReporter:
    """Callbacks invoked by the pipeline. The default does nothing."""

    def stage(self, stage):
        """A new provisioning stage begins."""

    @contextmanager
    def task(self, description: str):
        """Wrap one long-running step."""
        yield

    def info(self, message: str):
        pass

    def success(self, message: str):
        pass

    def warning(self, message: str):
        pass


class RecordingProgress(ProgressReporter):
    """Collects every callback as ``(kind, text)``."""

    def __init__(self):
        self.events = []

    def stage(self, stage):
        self.events.append(("stage", stage.value))

    @contextmanager
    def task(self, description: str):
        self.events.append(("task", description))
        yield

    def info(self, message: str):
        self.events.append(("info", message))

    def success(self, message: str):
        self.events.append(("success", message))

    def warning(self, message: str):
        self.events.append(("warning", message))
