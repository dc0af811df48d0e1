from abc import ABC, abstractmethod

from skinconsult.domain.entities.snapshot import SessionSnapshot


class SnapshotExporterPort(ABC):
    @abstractmethod
    def export(self, snapshot: SessionSnapshot) -> None:
        raise NotImplementedError
