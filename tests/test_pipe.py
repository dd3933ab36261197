import asyncio

import pytest

from duf_backend.pipe import BoundedPipe, PipeClosedError, PipeWriter


@pytest.mark.asyncio
async def test_read_after_writer_close_drains_then_eof():
    pipe = BoundedPipe(16)
    await pipe.write(b"hello")
    pipe.close_writer()
    assert await pipe.read() == b"hello"
    assert await pipe.read() == b""


@pytest.mark.asyncio
async def test_read_respects_size():
    pipe = BoundedPipe(16)
    await pipe.write(b"abcdef")
    assert await pipe.read(4) == b"abcd"
    assert await pipe.read(4) == b"ef"


@pytest.mark.asyncio
async def test_writer_blocks_when_full():
    """A write larger than the capacity waits until the reader makes room"""
    pipe = BoundedPipe(4)
    writer = asyncio.create_task(pipe.write(b"0123456789"))
    await asyncio.sleep(0.01)
    assert not writer.done()
    assert len(pipe) == 4

    received = b""
    while len(received) < 10:
        received += await pipe.read()
        assert len(pipe) <= 4
    await asyncio.wait_for(writer, 1)
    assert received == b"0123456789"


@pytest.mark.asyncio
async def test_close_reader_fails_blocked_writer():
    pipe = BoundedPipe(2)
    writer = asyncio.create_task(pipe.write(b"abcd"))
    await asyncio.sleep(0.01)
    pipe.close_reader()
    with pytest.raises(PipeClosedError):
        await asyncio.wait_for(writer, 1)
    with pytest.raises(PipeClosedError):
        await pipe.write(b"x")


@pytest.mark.asyncio
async def test_async_iteration():
    pipe = BoundedPipe(3)

    async def produce():
        for part in (b"ab", b"cde", b"f"):
            await pipe.write(part)
        pipe.close_writer()

    task = asyncio.create_task(produce())
    chunks = [chunk async for chunk in pipe]
    await task
    assert b"".join(chunks) == b"abcdef"
    assert all(len(chunk) <= 3 for chunk in chunks)


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        BoundedPipe(0)


@pytest.mark.asyncio
async def test_pipe_writer_from_thread():
    pipe = BoundedPipe(8)
    loop = asyncio.get_running_loop()
    writer = PipeWriter(pipe, loop)

    def produce():
        for _ in range(10):
            assert writer.write(b"0123456789") == 10
        loop.call_soon_threadsafe(pipe.close_writer)

    task = asyncio.create_task(asyncio.to_thread(produce))
    data = b"".join([chunk async for chunk in pipe])
    await task
    assert data == b"0123456789" * 10
