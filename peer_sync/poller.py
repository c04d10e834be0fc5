import asyncio
import logging
from typing import Any, Callable

from peer_sync.api import NodeAPI
from peer_sync.constants import Constants
from peer_sync.errors import ConnectivityError, DataDecodingError
from peer_sync.reconciler import StateReconciler

logger = logging.getLogger(Constants.LOGGER_NAME)


class Poller:
    """
    Re-reads peers, messages, local address and files every interval.

    The four reads of a tick run concurrently and each one is applied as soon as it
    comes back - there is no barrier between them. Each endpoint has at most one read
    outstanding, so a stalled backend doesn't pile up reads. A failed read only sets
    the error banner; the next tick simply tries again.
    """

    def __init__(self,
                 reconciler: StateReconciler,
                 api: NodeAPI | None = None,
                 interval_sec: float = Constants.POLL_INTERVAL_SEC):
        self.reconciler = reconciler
        self.api = api
        self.interval_sec = interval_sec
        self.__task: asyncio.Task | None = None
        self.__in_flight: dict[str, asyncio.Task] = {}

    async def __aenter__(self) -> "Poller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def start(self) -> asyncio.Task:
        """
        Starts polling on the running event loop.
        :return: the repeating task; calling start() again while running returns the same one.
        """
        if self.__task is not None and not self.__task.done():
            return self.__task
        logger.info(f"[Poller] Starting, every {self.interval_sec}s.")
        self.__task = asyncio.get_running_loop().create_task(self.__run())
        return self.__task

    def stop(self) -> None:
        """
        Stops the timer. Reads already sent are left alone, their results still apply.
        """
        if self.__task is None or self.__task.done():
            logger.debug("[Poller] Already stopped.")
            return
        logger.info("[Poller] Stopping.")
        self.__task.cancel()
        self.__task = None

    def stopped(self) -> bool:
        return self.__task is None or self.__task.done()

    @property
    def in_flight(self) -> int:
        return len(self.__in_flight)

    async def __run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval_sec)

    def tick(self) -> list[asyncio.Task]:
        """
        Fires off one poll cycle without waiting for it. An endpoint whose read from
        an earlier tick hasn't come back yet is skipped this time round.
        :return: the read tasks started, or nothing if the backend isn't known yet.
        """
        api = self.api
        if api is None:
            return []

        reads: list[tuple[str, Callable[[], Any], Callable[[Any], Any]]] = [
            ("peers", api.get_peers, self.reconciler.apply_peers),
            ("messages", api.get_messages, self.reconciler.apply_messages_and_transfers),
            ("local", api.get_local_addr, self.reconciler.apply_local_addr),
            ("files", api.get_files, self.reconciler.apply_files),
        ]
        loop = asyncio.get_running_loop()
        tasks = []
        for name, fetch, apply in reads:
            if name in self.__in_flight:
                logger.debug(f"[Poller] Previous {name} read still pending, skipping.")
                continue
            task = loop.create_task(self.read(name, fetch, apply))
            self.__in_flight[name] = task
            task.add_done_callback(lambda t, name=name: self.__done(name, t))
            tasks.append(task)
        return tasks

    def __done(self, name: str, task: asyncio.Task) -> None:
        if self.__in_flight.get(name) is task:
            del self.__in_flight[name]

    async def poll_once(self) -> None:
        """Runs one cycle and waits for the reads it started."""
        await asyncio.gather(*self.tick())

    async def read(self, name: str, fetch: Callable[[], Any], apply: Callable[[Any], Any]) -> bool:
        """
        Runs one blocking read in a worker thread and applies the result on the loop.
        :return: whether the read succeeded.
        """
        try:
            result = await asyncio.to_thread(fetch)
        except (ConnectivityError, DataDecodingError) as e:
            logger.debug(f"[Poller] Error fetching {name}: {e}")
            self.reconciler.report_connectivity_error(str(e))
            return False

        apply(result)
        self.reconciler.clear_connectivity_error()
        return True
