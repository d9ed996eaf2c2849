"""
Output records and sinks.

Records are flat ``str -> number | str`` mappings carrying ``host`` and
``name`` plus the collected values. Sinks must accept submissions from the
scheduler and from notification threads concurrently.
"""

import abc
import json
import logging
import queue
import sys
import threading
from typing import Any, Dict, Mapping, Optional, TextIO

Record = Dict[str, Any]


class OutputSink(abc.ABC):
    """Destination for emitted records."""

    @abc.abstractmethod
    def submit(self, record: Record) -> None:
        pass


class QueueOutputSink(OutputSink):
    """Puts records on a thread-safe queue for a host process to drain."""

    def __init__(self, maxsize: int = 0):
        self.queue: "queue.Queue[Record]" = queue.Queue(maxsize=maxsize)

    def submit(self, record: Record) -> None:
        self.queue.put(record)

    def drain(self) -> list:
        """Return every queued record without blocking."""
        records = []
        while True:
            try:
                records.append(self.queue.get_nowait())
            except queue.Empty:
                return records


class JsonLinesOutputSink(OutputSink):
    """Writes each record as one JSON object per line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    def submit(self, record: Record) -> None:
        line = json.dumps(record, default=str, ensure_ascii=False)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class RecordEmitter:
    """Builds the final record for a query or subscription and submits it."""

    def __init__(self, sink: OutputSink, host: str, logger: Optional[logging.Logger] = None):
        self.sink = sink
        self.host = host
        self.logger = logger or logging.getLogger(__name__)

    def emit(self, name: str, values: Mapping[str, Any]) -> Record:
        record: Record = {"host": self.host, "name": name}
        for key, value in values.items():
            if value is not None:
                record[str(key)] = value

        self.logger.debug(f"Sending record {name} to the output sink", extra={"record_name": name})
        self.sink.submit(record)
        return record
