"""
Doctor lookup used to validate doctor ids and enrich reports with names.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..exceptions import DoctorNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class DoctorInfo:
    doctor_id: str
    full_name: str
    department: Optional[str] = None
    service_categories: List[str] = field(default_factory=list)
    is_active: bool = True


class DoctorDirectory(ABC):

    @abstractmethod
    def get_doctor(self, doctor_id: str) -> Optional[DoctorInfo]:
        ...

    def require_doctor(self, doctor_id: str) -> DoctorInfo:
        doctor = self.get_doctor(doctor_id)
        if doctor is None or not doctor.is_active:
            raise DoctorNotFoundError(doctor_id)
        return doctor

    def doctor_name(self, doctor_id: str) -> Optional[str]:
        doctor = self.get_doctor(doctor_id)
        return doctor.full_name if doctor else None


class InMemoryDoctorDirectory(DoctorDirectory):

    def __init__(self, doctors: Iterable[DoctorInfo] = ()):
        self._doctors: Dict[str, DoctorInfo] = {d.doctor_id: d for d in doctors}

    def add_doctor(self, doctor: DoctorInfo) -> DoctorInfo:
        self._doctors[doctor.doctor_id] = doctor
        logger.info(f"Registered doctor {doctor.doctor_id} ({doctor.full_name})")
        return doctor

    def get_doctor(self, doctor_id: str) -> Optional[DoctorInfo]:
        return self._doctors.get(doctor_id)
