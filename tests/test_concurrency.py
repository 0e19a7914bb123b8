import gc
import threading
from datetime import date, datetime, time

from clinicbook.domain.scheduling.locking import DoctorLockRegistry
from clinicbook.domain.scheduling.schemas import AppointmentCreate
from clinicbook.domain.scheduling.service import SlotBookingEngine
from clinicbook.errors import ConflictError, SchedulingError
from clinicbook.models import Appointment

DAY = date(2024, 1, 15)


def at(hour, minute=0):
    return datetime.combine(DAY, time(hour, minute))


def run_concurrently(session_factory, locks, dispatcher, calls):
    """Run each call(engine) on its own thread and session; return results in call order"""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(index, call):
        session = session_factory()
        engine = SlotBookingEngine(session, dispatcher, locks)
        try:
            barrier.wait()
            results[index] = call(engine)
        except SchedulingError as e:
            results[index] = e
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    return results


class TestDoctorLockRegistry:
    def test_same_doctor_shares_a_lock(self):
        registry = DoctorLockRegistry()
        assert registry.lock_for(1) is registry.lock_for(1)
        assert registry.lock_for(1) is not registry.lock_for(2)

    def test_unused_locks_are_released(self):
        registry = DoctorLockRegistry()
        held = registry.lock_for(1)
        registry.lock_for(2)
        gc.collect()

        assert len(registry) == 1
        assert registry.lock_for(1) is held

        del held
        gc.collect()
        assert len(registry) == 0

    def test_lock_is_a_context_manager(self):
        lock = DoctorLockRegistry().lock_for(1)

        with lock:
            assert lock.locked()
        assert not lock.locked()


class TestConcurrentBooking:
    def test_overlapping_creates_admit_exactly_one(
        self, session_factory, locks, dispatcher, db_session, schedule
    ):
        schedule_id = schedule.id

        def create(start, end):
            return lambda engine: engine.create(
                AppointmentCreate(doctorId=1, scheduleId=schedule_id, startTime=start, endTime=end)
            ).id

        results = run_concurrently(
            session_factory,
            locks,
            dispatcher,
            [create(at(9), at(9, 30)), create(at(9, 15), at(9, 45)), create(at(9, 10), at(9, 20))],
        )

        successes = [r for r in results if isinstance(r, int)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 2
        db_session.expire_all()
        assert db_session.query(Appointment).count() == 1

    def test_double_booking_admits_exactly_one(
        self, session_factory, locks, dispatcher, booking_engine, db_session, schedule, patient, second_patient
    ):
        slot = booking_engine.create(
            AppointmentCreate(doctorId=1, scheduleId=schedule.id, startTime=at(9), endTime=at(9, 30))
        )
        slot_id = slot.id

        results = run_concurrently(
            session_factory,
            locks,
            dispatcher,
            [
                lambda engine: engine.book_appointment(slot_id, 7).patient_id,
                lambda engine: engine.book_appointment(slot_id, 8).patient_id,
            ],
        )

        winners = [r for r in results if isinstance(r, int)]
        losers = [r for r in results if isinstance(r, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1 and losers[0].reason == "already booked"
        db_session.expire_all()
        assert db_session.get(Appointment, slot_id).patient_id == winners[0]
        assert len(dispatcher.of_type("BookingCreated")) == 1

    def test_different_doctors_do_not_block_each_other(
        self, session_factory, locks, dispatcher, db_session, schedule, other_doctor
    ):
        from clinicbook.models import Schedule

        foreign = Schedule(
            doctor_id=other_doctor.id, work_date=DAY, start_time=time(8), end_time=time(17)
        )
        db_session.add(foreign)
        db_session.commit()
        ids = (schedule.id, foreign.id)

        results = run_concurrently(
            session_factory,
            locks,
            dispatcher,
            [
                lambda engine: engine.create(
                    AppointmentCreate(doctorId=1, scheduleId=ids[0], startTime=at(9), endTime=at(9, 30))
                ).id,
                lambda engine: engine.create(
                    AppointmentCreate(doctorId=2, scheduleId=ids[1], startTime=at(9), endTime=at(9, 30))
                ).id,
            ],
        )

        assert all(isinstance(r, int) for r in results)
