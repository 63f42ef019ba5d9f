"""
Collaborator directory for vendor and project lookups.

Vendor and project master data is owned elsewhere.  The procurement engine
only needs to know whether a referenced vendor or project exists, whether
the vendor is active, and the vendor's name and category for reporting.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from procure_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.references")


@dataclass(frozen=True)
class VendorRef:
    vendor_id: str
    name: str
    category: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class ProjectRef:
    project_id: str
    name: str


class ReferenceDirectory(ABC):
    """Read-only lookup of collaborator-owned master data."""

    @abstractmethod
    def get_vendor(self, vendor_id: str) -> VendorRef | None:
        ...

    @abstractmethod
    def get_project(self, project_id: str) -> ProjectRef | None:
        ...


class InMemoryReferenceDirectory(ReferenceDirectory):
    """Directory backed by dicts; used by tests and single-process setups."""

    def __init__(
        self,
        vendors: Iterable[VendorRef] = (),
        projects: Iterable[ProjectRef] = (),
    ):
        self._vendors = {v.vendor_id: v for v in vendors}
        self._projects = {p.project_id: p for p in projects}

    def add_vendor(self, vendor: VendorRef) -> None:
        self._vendors[vendor.vendor_id] = vendor

    def add_project(self, project: ProjectRef) -> None:
        self._projects[project.project_id] = project

    def get_vendor(self, vendor_id: str) -> VendorRef | None:
        return self._vendors.get(str(vendor_id))

    def get_project(self, project_id: str) -> ProjectRef | None:
        return self._projects.get(str(project_id))
