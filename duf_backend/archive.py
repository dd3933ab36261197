# duf-serve/duf_backend/archive.py

import asyncio
import os
import shutil
import stat
import threading
import zipfile
from pathlib import Path
from typing import AsyncIterator, BinaryIO
from urllib.parse import quote

from fastapi.responses import StreamingResponse

from duf_backend.pipe import BoundedPipe, PipeClosedError, PipeWriter
from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)

# Capacity of the pipe between the zip producer and the response body
BUF_SIZE = 16 * 1024
COPY_CHUNK = 8 * 1024

# Strong references to running producers so they are not collected mid-stream
_background_tasks = set()


def write_zip(fileobj: BinaryIO, directory: Path) -> int:
    """
    Write a deflated ZIP of every regular file below `directory` to `fileobj`.

    Runs in a worker thread. Symlinks and special files are skipped and
    directories get no entries of their own. A file that can't be opened is
    logged and skipped; a read error mid-file leaves that entry truncated.
    Errors from `fileobj` itself propagate. Returns the number of entries.
    """
    count = 0
    with zipfile.ZipFile(fileobj, "w", zipfile.ZIP_DEFLATED, strict_timestamps=False) as zipf:
        for root, dirs, files in os.walk(directory):
            dirs.sort()
            for name in sorted(files):
                file_path = os.path.join(root, name)
                arcname = Path(os.path.relpath(file_path, directory)).as_posix()
                try:
                    if not stat.S_ISREG(os.lstat(file_path).st_mode):
                        logger.debug(f"Skipping non-regular entry during zip: {file_path}")
                        continue
                    zinfo = zipfile.ZipInfo.from_file(file_path, arcname, strict_timestamps=False)
                    source = open(file_path, "rb")
                except OSError as e:
                    logger.warning(f"Skipping {file_path} during zip: {e}")
                    continue

                zinfo.compress_type = zipfile.ZIP_DEFLATED
                with source:
                    try:
                        with zipf.open(zinfo, "w") as dest:
                            shutil.copyfileobj(source, dest, COPY_CHUNK)
                    except OSError as e:
                        logger.warning(f"Read error in {file_path}, zip entry truncated: {e}")
                count += 1
                logger.debug(f"Added to zip: {file_path} as {arcname}")
    return count


def start_zip_thread(loop: asyncio.AbstractEventLoop, writer: PipeWriter, directory: Path) -> asyncio.Future:
    """
    Run write_zip on its own daemon thread and return a future for its result.

    The thread may sit blocked in PipeWriter.write for as long as the client is
    slow, so it must not come from the loop's default executor, which aiofiles
    and every asyncio.to_thread call share.
    """
    future = loop.create_future()

    def deliver(result, error):
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def run():
        result, error = None, None
        try:
            result = write_zip(writer, directory)
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(deliver, result, error)
        except RuntimeError:
            # Event loop already closed, nobody is waiting for this archive
            logger.debug(f"Zip thread for {directory} finished after its loop closed")

    thread = threading.Thread(target=run, name=f"ZipThread-{directory.name or 'root'}", daemon=True)
    thread.start()
    return future


async def produce_zip(pipe: BoundedPipe, directory: Path) -> None:
    """Producer task: zip `directory` into `pipe` from a dedicated thread, then close the pipe."""
    loop = asyncio.get_running_loop()
    writer = PipeWriter(pipe, loop)
    try:
        count = await start_zip_thread(loop, writer, directory)
        logger.info(f"Zipped {count} files from {directory}")
    except PipeClosedError:
        logger.warning(f"Client stopped reading, zip of {directory} abandoned")
    except Exception as e:
        logger.error(f"Fail to zip {directory}, {e}", exc_info=True)
    finally:
        pipe.close_writer()


async def stream_zip(directory: Path, capacity: int = BUF_SIZE) -> AsyncIterator[bytes]:
    """
    Response body for a directory archive. The producer is spawned when the
    body starts streaming and stops once the consumer goes away.
    """
    pipe = BoundedPipe(capacity)
    task = asyncio.create_task(produce_zip(pipe, directory))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    try:
        async for chunk in pipe:
            yield chunk
    finally:
        pipe.close_reader()


def zip_response(directory: Path) -> StreamingResponse:
    filename = f"{directory.name or 'root'}.zip"
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    logger.info(f"Folder download requested for path: {directory}")
    return StreamingResponse(stream_zip(directory), media_type="application/zip", headers=headers)
