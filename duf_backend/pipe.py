# duf-serve/duf_backend/pipe.py

import asyncio
import io


class PipeClosedError(Exception):
    """The reading side went away; the producer should stop."""


class BoundedPipe:
    """
    In-memory byte channel holding at most `capacity` unread bytes, for one
    producer and one consumer on the same event loop.

    `write` waits while the buffer is full, `read` waits while it is empty.
    Closing the writer turns a drained buffer into EOF (b""); closing the
    reader drops buffered data and makes pending and future writes raise
    PipeClosedError. The close methods are synchronous so they can run from
    a `finally` block of a cancelled task.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._buffer = bytearray()
        self._writer_closed = False
        self._reader_closed = False
        self._data_ready = asyncio.Event()
        self._space_ready = asyncio.Event()

    def __len__(self):
        return len(self._buffer)

    async def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            while not self._reader_closed and len(self._buffer) >= self.capacity:
                self._space_ready.clear()
                await self._space_ready.wait()
            if self._reader_closed:
                raise PipeClosedError("reader closed")
            if self._writer_closed:
                raise PipeClosedError("writer closed")
            n = min(self.capacity - len(self._buffer), len(view))
            self._buffer += view[:n]
            view = view[n:]
            self._data_ready.set()

    async def read(self, n: int = -1) -> bytes:
        """Up to `n` bytes (everything buffered if n < 0); b"" once closed and drained."""
        while not self._buffer and not self._writer_closed and not self._reader_closed:
            self._data_ready.clear()
            await self._data_ready.wait()
        if self._reader_closed:
            return b""
        if n < 0 or n > len(self._buffer):
            n = len(self._buffer)
        chunk = bytes(self._buffer[:n])
        del self._buffer[:n]
        self._space_ready.set()
        return chunk

    def close_writer(self) -> None:
        self._writer_closed = True
        self._data_ready.set()

    def close_reader(self) -> None:
        self._reader_closed = True
        self._buffer.clear()
        self._space_ready.set()
        self._data_ready.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk


class PipeWriter(io.RawIOBase):
    """
    Blocking, write-only file object over a BoundedPipe, for use from a worker
    thread. Each write hands the bytes to the pipe's event loop and waits until
    they fit in the buffer, so a slow reader stalls the thread.
    """

    def __init__(self, pipe: BoundedPipe, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._pipe = pipe
        self._loop = loop

    def writable(self):
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed PipeWriter")
        data = bytes(data)
        asyncio.run_coroutine_threadsafe(self._pipe.write(data), self._loop).result()
        return len(data)
