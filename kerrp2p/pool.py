"""
Reusable Oracle evaluation contexts.

Parallel workers each need a private RayTracer. Building one per
evaluation is wasteful, so contexts are kept in an InstancePool and
handed out exclusively: a worker acquires a context for the whole of its
task (a block of grid rows, one refinement) and gives it back at the
end. Contexts live until clear() is called.

One pool exists per precision. The engine owns the pools and passes them
to the sweep and solver functions explicitly.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import threading
from contextlib import contextmanager

from kerrp2p.precision import DOUBLE

log = logging.getLogger(__name__)


class InstancePool:
    """
    Pool of RayTracer contexts for one precision.

    Parameters
    ----------
    factory : callable
        Called as factory(precision=...) to build a new context.
    precision : Precision, optional
        Precision of every context in this pool (default DOUBLE).
    """

    def __init__(self, factory, precision=DOUBLE):
        self.factory = factory
        self.precision = precision
        self._free = []
        self._lock = threading.Lock()
        self._created = 0
        self._in_use = 0

    @property
    def size(self):
        """Number of idle contexts currently held."""
        with self._lock:
            return len(self._free)

    @property
    def created(self):
        """Total contexts built since the last clear()."""
        with self._lock:
            return self._created

    @property
    def in_use(self):
        with self._lock:
            return self._in_use

    def acquire(self):
        """
        Hand out a context for exclusive use.

        Reuses an idle context when one exists, otherwise builds a new
        one. The context must be given back with release().
        """
        with self._lock:
            self._in_use += 1
            if self._free:
                return self._free.pop()
            self._created += 1
        # Build outside the lock; construction may be slow
        try:
            return self.factory(precision=self.precision)
        except Exception:
            with self._lock:
                self._in_use -= 1
                self._created -= 1
            raise

    def release(self, context):
        """Return a context obtained from acquire()."""
        with self._lock:
            self._in_use -= 1
            self._free.append(context)

    @contextmanager
    def lease(self):
        """Context manager around acquire()/release()."""
        context = self.acquire()
        try:
            yield context
        finally:
            self.release(context)

    def clear(self):
        """Drop every idle context. Contexts still leased come back on release."""
        with self._lock:
            dropped = len(self._free)
            self._free = []
            self._created = self._in_use
        log.debug("cleared %d pooled contexts (%s)", dropped,
                  self.precision.name)
