"""Open/booked state of an appointment slot.

``Appointment.slot`` returns one of these instead of callers checking
``patient_id is None`` directly.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class OpenSlot:
    """No patient attached; the slot can still be booked"""


@dataclass(frozen=True)
class BookedSlot:
    """A patient holds the slot"""

    patient_id: int


SlotState = Union[OpenSlot, BookedSlot]
