"""Execution helpers for background work."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable


class Worker:
    """Thread pool for chunked proximity scans."""

    def __init__(self, max_workers: int = 1) -> None:
        """Initialize the executor.

        Parameters
        ----------
        max_workers
            Number of thread pool workers.

        Returns
        -------
        None
            This method does not return a value.
        """

        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)))

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any):
        """Run work in the thread pool.

        Parameters
        ----------
        fn
            Callable to execute.
        *args
            Positional arguments to pass to ``fn``.
        **kwargs
            Keyword arguments to pass to ``fn``.

        Returns
        -------
        concurrent.futures.Future
            Future for the submitted work.
        """
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "Worker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
