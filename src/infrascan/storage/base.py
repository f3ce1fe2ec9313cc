from abc import ABC, abstractmethod
from typing import Optional

from src.infrascan.models import Job


class JobStore(ABC):
    """
    Keyed record store for job state.

    Implementations never raise out of these methods: storage problems are
    logged, `get` degrades to None and `set` is best effort. Writes for the
    same id are not serialized, the last writer wins.
    """

    @abstractmethod
    def init(self) -> None:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def set(self, job_id: str, job: Job) -> None:
        ...

    @abstractmethod
    def purge_expired(self, now: Optional[float] = None) -> int:
        ...
