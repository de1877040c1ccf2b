"""Concurrent draining of a child's stdout and stderr onto one console.

Both readers push write tasks onto a single queue; one consumer task performs
them in push order. The consumer alone touches the console and the
clean-line flag, so chunks from the two streams never interleave mid-write.
"""

import asyncio
import codecs
from typing import Callable, List, Optional, Protocol

import config
from utils.logger import get_logger

logger = get_logger()

_Task = Callable[[], None]


class ConsoleSink(Protocol):
    def write(self, text: str) -> None: ...


class StreamMultiplexer:
    """Mirrors one child's output streams to a console and captures stdout.

    Usage::

        mux = StreamMultiplexer(sink)
        mux.attach(child.stdout, child.stderr)
        output = await mux.drain()
    """

    def __init__(
        self,
        sink: ConsoleSink,
        pad: str = config.WRITE_PAD,
        chunk_size: int = config.READ_CHUNK_SIZE,
        encoding: str = "utf-8",
    ):
        self._sink = sink
        self._pad = pad
        self._chunk_size = chunk_size
        self._encoding = encoding
        self._queue: "asyncio.Queue[Optional[_Task]]" = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._readers: List[asyncio.Task] = []
        self._captured: List[bytes] = []
        self.clean = True
        self.bytes_written = 0
        self.drained = False

    # --- queue ---

    def _start(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())
            self._queue.put_nowait(lambda: self._sink.write(self._pad))

    def _push(self, task: _Task) -> None:
        self._start()
        self._queue.put_nowait(task)

    async def _consume(self) -> None:
        while True:
            task = await self._queue.get()
            if task is None:
                return
            task()

    def _emit_chunk(self, text: str, chunk: bytes) -> None:
        self._sink.write(text.replace("\n", "\n" + self._pad))
        if chunk:
            self.clean = chunk.endswith(b"\n")
        self.bytes_written += len(chunk)

    def _emit_line_break(self) -> None:
        self._sink.write("\r" if self.clean else "\n")

    def _emit_notice(self, message: str) -> None:
        self._emit_line_break()
        self._sink.write(message.rstrip("\n") + "\n" + self._pad)
        self.clean = True

    # --- readers ---

    async def _read(self, reader: asyncio.StreamReader, name: str, capture: bool) -> None:
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        while True:
            chunk = await reader.read(self._chunk_size)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._push(lambda: self._emit_chunk(tail, b""))
                logger.debug(f"{name} reached end of stream.")
                return
            if capture:
                self._captured.append(chunk)
            text = decoder.decode(chunk)
            self._push(lambda text=text, chunk=chunk: self._emit_chunk(text, chunk))
            logger.debug(f"Processed {len(chunk)} bytes from {name}.")

    def attach(self, stdout: asyncio.StreamReader, stderr: asyncio.StreamReader) -> None:
        """Starts draining both streams; only stdout is captured."""
        self._start()
        self._readers = [
            asyncio.create_task(self._read(stdout, "stdout", capture=True)),
            asyncio.create_task(self._read(stderr, "stderr", capture=False)),
        ]

    def notice(self, message: str) -> None:
        """Queues a message on its own line, keeping the pad for later output."""
        self._push(lambda: self._emit_notice(message))

    # --- completion ---

    @property
    def captured(self) -> str:
        return b"".join(self._captured).decode(self._encoding, errors="replace")

    async def drain(self) -> str:
        """Waits for both streams to end and every queued write to finish.

        Ends with a carriage return on a clean line, otherwise a newline, so
        the next console line starts at column zero.

        Returns:
            The captured stdout text.
        """
        try:
            await asyncio.gather(*self._readers)
        finally:
            self.drained = True
            # A failed reader leaves its sibling running; stop it before the queue closes
            for reader in self._readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*self._readers, return_exceptions=True)
            self._push(self._emit_line_break)
            self._queue.put_nowait(None)
            assert self._consumer is not None
            await self._consumer
        logger.debug(f"Pipes closed, written {self.bytes_written} bytes.")
        return self.captured
