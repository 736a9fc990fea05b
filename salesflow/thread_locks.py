# salesflow/thread_locks.py
"""
Exclusion mutuelle par thread de conversation.
Deux messages du même thread ne s'entrelacent jamais (lecture-modification-écriture de session) ;
des threads différents restent indépendants. Registre injecté (pas de global process-wide).
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, List, Optional, Protocol

from salesflow import config

logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    """Levée quand le lock d'un thread n'est pas obtenu dans le délai."""


class ThreadLocks(Protocol):
    def hold(self, thread_id: str) -> ContextManager[None]:
        ...


class ThreadLockRegistry:
    """Locks en mémoire, un par thread_id, libérés du registre quand plus personne ne les attend."""

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._timeout = config.SESSION_LOCK_TIMEOUT_SEC if timeout_seconds is None else timeout_seconds
        self._guard = threading.Lock()
        # thread_id -> [lock, nb d'utilisateurs (détenteur + en attente)]
        self._locks: Dict[str, List] = {}

    def _acquire_entry(self, thread_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(thread_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[thread_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, thread_id: str) -> None:
        with self._guard:
            entry = self._locks.get(thread_id)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[thread_id]

    @contextmanager
    def hold(self, thread_id: str) -> Iterator[None]:
        lock = self._acquire_entry(thread_id)
        try:
            if not lock.acquire(timeout=self._timeout):
                logger.warning("[THREAD_LOCK_TIMEOUT] thread=%s", thread_id)
                raise LockTimeout(f"lock timeout for thread {thread_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release_entry(thread_id)

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)
