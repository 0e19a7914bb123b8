"""
Scheduling Domain

Doctor schedules (availability windows) and the appointment slots booked
inside them.

- repository.py     - Database queries for doctors, schedules and appointments
- intervals.py      - Half-open overlap and containment checks
- locking.py        - Per-doctor serialization of mutating operations
- service.py        - SlotBookingEngine: create, book, cancel, bulk create
- schedule_service.py - Availability window management
- router.py         - /appointments and /schedules endpoints

Nothing is imported here; models.py imports slot_state from this package.
"""
