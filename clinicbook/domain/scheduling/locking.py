"""Per-doctor serialization for mutating scheduling operations"""

import logging
from threading import Lock
from weakref import WeakValueDictionary

logger = logging.getLogger(__name__)


class DoctorLock:
    """Context-manager mutex for one doctor; weak-referenceable"""

    def __init__(self, doctor_id: int):
        self.doctor_id = doctor_id
        self._lock = Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


class DoctorLockRegistry:
    """
    One mutex per doctor id, created on first use.

    Operations for the same doctor run one at a time inside this process;
    different doctors never contend. Cross-process ordering comes from the
    doctor row lock taken inside the transaction.

    Entries are weak: a doctor's lock lives only while some caller holds or
    waits on it, so the registry does not grow with every doctor ever seen.
    """

    def __init__(self):
        self._locks: "WeakValueDictionary[int, DoctorLock]" = WeakValueDictionary()
        self._guard = Lock()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, doctor_id: int) -> DoctorLock:
        with self._guard:
            lock = self._locks.get(doctor_id)
            if lock is None:
                lock = DoctorLock(doctor_id)
                self._locks[doctor_id] = lock
                logger.debug(f"🔒 Created booking lock for doctor {doctor_id}")
            return lock


# Shared by every engine instance in the process
doctor_locks = DoctorLockRegistry()
