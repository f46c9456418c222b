"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Runs one task per accepted connection on a bounded set of threads.

    ┌──────────────┐   submit()   ┌─────────────────┐   get()   ┌──────────┐
    │ accept loop  │ ───────────► │   task queue    │ ────────► │ Worker-0 │
    └──────────────┘              │ (bounded size)  │ ────────► │ Worker-1 │
                                  └─────────────────┘ ────────► │   ...    │
                                                                └──────────┘

- min_workers threads start with the pool; more are added (up to
  max_workers) while every worker is busy and tasks are waiting
- a full queue rejects the task instead of blocking the accept loop
- the pool counts tasks that were submitted but haven't finished, so a
  shutdown can wait for in-flight work with a deadline (wait_idle)

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Runs tasks from the pool's queue until it receives None.

    A task that raises is logged with its traceback; the worker survives
    it. Every task, failed or not, is reported back to the pool so that
    wait_idle() can count in-flight work.
    """

    def __init__(
        self,
        pool: "ThreadPool",
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        super().__init__(name=f"xend-worker-{worker_id}", daemon=True)

        self.pool = pool
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._stop_requested = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        while not self._stop_requested.is_set():
            try:
                task = self.pool._task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue  # re-check the stop flag

            if task is None:
                break

            self.state = WorkerState.BUSY
            try:
                self._run_task(task)
            finally:
                self.state = WorkerState.IDLE
                self.pool._task_finished()

        self.state = WorkerState.STOPPED
        logger.debug("%s exiting after %d tasks", self.name, self.tasks_completed)

    def _run_task(self, task: Task):
        waited = time.time() - task.submitted_at
        if waited > 1.0:
            logger.debug("%s: task waited %.2fs in the queue", self.name, waited)

        try:
            task.func(*task.args, **task.kwargs)
        except Exception:
            self.tasks_failed += 1
            logger.exception("%s: task %r raised", self.name, task.func)
        else:
            self.tasks_completed += 1

    def shutdown(self):
        """Ask the worker to exit once its current task is done."""
        self._stop_requested.set()


class ThreadPool:
    """
    Thread pool for concurrent task execution.

        pool = ThreadPool(min_workers=4, max_workers=32)
        pool.start()

        if not pool.submit(handle_connection, args=(conn,)):
            ...   # queue full, reject

        pool.wait_idle(timeout=5.0)   # in-flight tasks done?
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 128,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            min_workers: Threads created at startup and always running.
            max_workers: Upper bound when scaling up under load.
            queue_size: Tasks that may wait for a free worker.
            idle_timeout: Seconds before idle workers check for shutdown.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"need 1 <= min_workers <= max_workers, got {min_workers}/{max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

        # Submitted but not finished
        self._pending = 0
        self._idle = threading.Condition()

    def start(self):
        """Start the pool with min_workers threads."""
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")

        for _ in range(self.min_workers):
            self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")

            worker = Worker(
                pool=self,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = False,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Submit a task for execution.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        with self._idle:
            self._pending += 1

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            self._task_finished()
            return False

        self._maybe_scale_up()
        return True

    def _task_finished(self):
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def _maybe_scale_up(self):
        # All workers busy and tasks waiting: add one more, up to max
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            can_grow = (
                busy_count == len(self._workers)
                and len(self._workers) < self.max_workers
                and self._task_queue.qsize() > 0
            )

        if can_grow:
            logger.debug(
                f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
            )
            try:
                self._add_worker()
            except RuntimeError:
                pass  # Another submit got there first

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every submitted task has finished.

        Returns:
            True if the pool went idle, False if the timeout expired.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, timeout: float = 2.0):
        """
        Stop the workers.

        Queued tasks that no worker has picked up are discarded. Workers
        get `timeout` seconds each to finish their current task; they are
        daemon threads, so a stuck one won't keep the process alive.
        """
        if not self._started:
            return

        logger.debug("Shutting down thread pool...")
        self._shutdown = True

        # Drop what nobody started
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            if task is not None:
                self._task_finished()

        for worker in self._workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass

        for worker in self._workers:
            worker.join(timeout=timeout)

        self._workers.clear()
        self._started = False

        logger.debug("Thread pool shutdown complete")

    @property
    def pending(self) -> int:
        """Tasks submitted and not yet finished (queued or running)."""
        return self._pending

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def queue_size(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()
