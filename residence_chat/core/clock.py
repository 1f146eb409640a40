from datetime import datetime, timezone
import itertools
import time
import threading


class ServerClock:
    """
    Server-side timestamp source for appended records.

    Timestamps never go backwards within a process, and every call also hands
    out a strictly increasing sequence number that breaks ties between records
    stamped with the same instant.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last = datetime.fromtimestamp(0, tz=timezone.utc)
        self._sequence = itertools.count(time.time_ns())

    def now(self) -> datetime:
        return self.stamp()[0]

    def stamp(self) -> tuple:
        """Return (timestamp, sequence) for a new record"""
        with self._lock:
            current = datetime.now(timezone.utc)
            if current < self._last:
                current = self._last
            self._last = current
            return current, next(self._sequence)


server_clock = ServerClock()
