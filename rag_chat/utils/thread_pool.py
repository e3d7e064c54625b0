import asyncio
import functools
import os
from concurrent.futures import ThreadPoolExecutor

IO_POOL_VAL = ThreadPoolExecutor(
    max_workers=int(os.getenv("IO_POOL_WORKERS", "8")),
    thread_name_prefix="rag-io",
)


def run_sync(func, *args, **kwargs) -> asyncio.Future:
    """
    Await blocking work from async code without stalling the event loop:
    FAISS load/save/search, PDF/DOCX/CSV parsing and blob writes.
    """
    loop = asyncio.get_running_loop()
    return loop.run_in_executor(IO_POOL_VAL, functools.partial(func, *args, **kwargs))
