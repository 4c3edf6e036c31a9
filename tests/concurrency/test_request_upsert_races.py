"""
Race tests for assignment request create_or_update.

Several drivers' sessions upsert the same (car, driver) pair at once.  The
partial unique index allows one pending row; losers of the insert race
fall back to updating that row.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from fleet_kernel.domain.clock import SystemClock
from fleet_kernel.exceptions import ConflictError
from fleet_kernel.models import CarAssignmentRequest
from fleet_kernel.services import AssignmentRequestService, CarAssignmentService

pytestmark = pytest.mark.concurrency

WORKERS = 4


def _register_car(session_factory, owner_id):
    with session_factory() as session:
        car = CarAssignmentService(session).register_car(
            vin=f"VIN{uuid4().hex[:14].upper()}",
            make="Toyota",
            model="Corolla",
            year=2019,
            owner_id=owner_id,
        )
        session.commit()
        return car.id


def _pending_count(session_factory, car_id, driver_id) -> int:
    with session_factory() as session:
        return session.scalar(
            select(func.count()).select_from(CarAssignmentRequest).where(
                CarAssignmentRequest.car_id == car_id,
                CarAssignmentRequest.driver_id == driver_id,
                CarAssignmentRequest.status == "pending",
            )
        )


class TestConcurrentUpsert:
    def test_one_pending_request_survives(self, session_factory, owner_id, driver_id):
        car_id = _register_car(session_factory, owner_id)
        barrier = Barrier(WORKERS)

        def _worker(n):
            with session_factory() as session:
                service = AssignmentRequestService(session, SystemClock())
                barrier.wait()
                try:
                    info = service.create_or_update(
                        car_id, driver_id, {"driver_notes": f"attempt {n}"},
                    )
                    session.commit()
                    return info.id
                except ConflictError:
                    session.rollback()
                    return None

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            ids = list(pool.map(_worker, range(WORKERS)))

        assert _pending_count(session_factory, car_id, driver_id) == 1
        succeeded = {request_id for request_id in ids if request_id is not None}
        assert len(succeeded) == 1

    def test_distinct_drivers_each_get_a_request(self, session_factory, owner_id):
        car_id = _register_car(session_factory, owner_id)
        drivers = [uuid4() for _ in range(WORKERS)]
        barrier = Barrier(WORKERS)

        def _worker(driver):
            with session_factory() as session:
                service = AssignmentRequestService(session, SystemClock())
                barrier.wait()
                info = service.create_or_update(car_id, driver)
                session.commit()
                return info.driver_id

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            created = list(pool.map(_worker, drivers))

        assert sorted(map(str, created)) == sorted(map(str, drivers))
        for driver in drivers:
            assert _pending_count(session_factory, car_id, driver) == 1
