"""Incremental file tailer with rotation and truncation detection."""

import logging
import os
import time

from log_consumer.models import FileIdentity, TailState

logger = logging.getLogger(__name__)

MAX_PARTIAL_BYTES = 256 * 1024


class TailerError(Exception):
    """The tailed path could not be opened, stat'ed or read."""


class FileTailer:
    """Returns the bytes appended to a file since the previous call.

    Handles:
    - Log rotation (device/inode change at the watched path)
    - File truncation (file shrinks below the consumed offset)
    - Partial lines (held back until their newline arrives, up to
      ``max_partial_bytes``; a longer line is dropped whole)

    The tailer starts at the current end of file, so content written before
    construction is never returned. Identity of the path on disk is
    re-verified at most once per ``rotation_check_interval`` seconds; an
    interval of 0 checks on every call.
    """

    def __init__(self, path: str, rotation_check_interval: float = 60.0, clock=time.monotonic,
                 max_partial_bytes: int = MAX_PARTIAL_BYTES):
        self._path = path
        self._max_partial_bytes = max_partial_bytes
        self._skipping_line = False
        self._rotation_check_interval = rotation_check_interval
        self._clock = clock
        self._file = None
        self._state: TailState | None = None
        self._open(seek_end=True)
        self._last_rotation_check = clock()

    @property
    def path(self) -> str:
        return self._path

    @property
    def state(self) -> TailState:
        return self._state

    def next(self) -> bytes:
        """Return complete lines appended since the last call (may be empty)."""
        if self._file is None:
            raise TailerError(f"Tailer for {self._path} is closed")

        if self._rotation_check_due():
            self._check_rotation()
        self._check_truncation()

        data = self._read_to_end()
        return self._take_complete_lines(data)

    def close(self):
        if self._file:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _open(self, seek_end: bool = False):
        try:
            fh = open(self._path, "rb")
        except OSError as e:
            raise TailerError(f"Could not open {self._path}: {e}") from e

        st = os.fstat(fh.fileno())
        offset = st.st_size if seek_end else 0
        fh.seek(offset)
        self._file = fh
        self._state = TailState(
            path=self._path,
            identity=FileIdentity.from_stat(st),
            offset=offset,
        )
        logger.debug("Opened %s (dev=%d, inode=%d) at offset %d",
                     self._path, st.st_dev, st.st_ino, offset)

    def _reopen(self):
        """Switch to whatever file the path names now, reading from its start."""
        if self._state.partial:
            logger.warning("Dropping %d bytes of unterminated line from %s",
                           len(self._state.partial), self._path)
        self._skipping_line = False
        self.close()
        self._open(seek_end=False)

    def _rotation_check_due(self) -> bool:
        return self._clock() - self._last_rotation_check >= self._rotation_check_interval

    def _check_rotation(self):
        self._last_rotation_check = self._clock()
        try:
            st = os.stat(self._path)
        except OSError as e:
            raise TailerError(f"Could not stat {self._path}: {e}") from e

        if FileIdentity.from_stat(st) != self._state.identity:
            logger.info("File rotation detected for %s", self._path)
            self._reopen()

    def _check_truncation(self):
        try:
            size = os.fstat(self._file.fileno()).st_size
        except OSError as e:
            raise TailerError(f"Could not stat {self._path}: {e}") from e

        # Checked on the open handle: copytruncate shrinks the file in place.
        if size < self._state.offset:
            logger.info("File truncation detected for %s (size=%d, offset=%d)",
                        self._path, size, self._state.offset)
            self._reopen()

    def _read_to_end(self) -> bytes:
        try:
            self._file.seek(self._state.offset)
            data = self._file.read()
        except OSError as e:
            raise TailerError(f"Could not read {self._path}: {e}") from e
        self._state.offset += len(data)
        return data

    def _take_complete_lines(self, data: bytes) -> bytes:
        """Split off any unterminated tail and keep it for the next call."""
        if self._skipping_line:
            end = data.find(b"\n")
            if end < 0:
                return b""
            self._skipping_line = False
            data = data[end + 1:]

        buffered = self._state.partial + data
        cut = buffered.rfind(b"\n") + 1
        self._state.partial = buffered[cut:]
        if len(self._state.partial) > self._max_partial_bytes:
            logger.warning("Dropping unterminated line of more than %d bytes from %s",
                           self._max_partial_bytes, self._path)
            self._state.partial = b""
            self._skipping_line = True
        return buffered[:cut]
