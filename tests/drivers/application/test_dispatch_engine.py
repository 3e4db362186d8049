"""Application tests for driver reservation, release and reassignment."""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from drivers.dispatch import DispatchEngine
from drivers.driver.driver import Driver, DriverLocation
from fulfillment.domain import fulfillment
from protean import current_domain
from shared.errors import NoCapacityError, ObjectNotFoundError, ValidationError
from shared.value_objects import Coordinates

ORIGIN = Coordinates(lat=-25.9692, lng=32.5732)


def _make_driver(repo, rating=4.0, **overrides):
    data = {
        "user_id": "user-1",
        "license_number": "MZ-0001",
        "location": DriverLocation(latitude=-25.9688, longitude=32.5725),
        "is_verified": True,
        "rating": rating,
        "delivery_areas": ["Baixa"],
    }
    data.update(overrides)
    return repo.add(Driver.register(**data))


@pytest.fixture()
def repo():
    return current_domain.repository_for(Driver)


@pytest.fixture()
def engine():
    return DispatchEngine(max_distance_meters=5000, candidate_limit=10)


class TestReserveDriver:
    def test_claims_best_candidate(self, repo, engine):
        _make_driver(repo, rating=3.0)
        best = _make_driver(repo, rating=5.0)

        driver = engine.reserve_driver(ORIGIN, "Baixa", "del-1")

        assert driver.id == best.id
        stored = repo.get(best.id)
        assert stored.is_available is False
        assert stored.active_delivery_id == "del-1"
        assert stored.total_deliveries == 1

    def test_no_candidates_raises(self, engine):
        with pytest.raises(NoCapacityError):
            engine.reserve_driver(ORIGIN, "Baixa", "del-1")

    def test_lost_claim_moves_to_next_candidate(self, repo, engine, monkeypatch):
        best = _make_driver(repo, rating=5.0)
        runner_up = _make_driver(repo, rating=4.0)

        # The index saw both drivers, but someone else claims the best one first
        original_claim = type(repo).conditional_claim

        def claim(self, driver_id, delivery_id):
            if driver_id == best.id:
                original_claim(self, driver_id, "someone-else")
            return original_claim(self, driver_id, delivery_id)

        monkeypatch.setattr(type(repo), "conditional_claim", claim)

        driver = engine.reserve_driver(ORIGIN, "Baixa", "del-1")

        assert driver.id == runner_up.id
        assert repo.get(best.id).active_delivery_id == "someone-else"

    def test_all_claims_lost_raises(self, repo, engine, monkeypatch):
        _make_driver(repo)
        monkeypatch.setattr(type(repo), "conditional_claim", lambda self, driver_id, delivery_id: None)

        with pytest.raises(NoCapacityError):
            engine.reserve_driver(ORIGIN, "Baixa", "del-1")

    def test_requeries_when_whole_candidate_list_is_lost(self, repo, engine, monkeypatch):
        drivers = [_make_driver(repo, rating=5.0 - n * 0.1) for n in range(11)]
        last = drivers[-1]
        original_find = engine.geo_index.find_candidates
        excluded_per_call = []

        def find_candidates(*args, **kwargs):
            candidates = original_find(*args, **kwargs)
            excluded_per_call.append(set(kwargs.get("exclude", ())))
            if len(excluded_per_call) == 1:
                # Rivals claim every driver in the first list before we get to them
                for candidate in candidates:
                    repo.conditional_claim(candidate.id, f"rival-{candidate.id}")
            return candidates

        monkeypatch.setattr(engine.geo_index, "find_candidates", find_candidates)

        driver = engine.reserve_driver(ORIGIN, "Baixa", "del-1")

        assert driver.id == last.id
        assert len(excluded_per_call) == 2
        assert excluded_per_call[1] == {d.id for d in drivers[:10]}
        assert repo.get(last.id).active_delivery_id == "del-1"

    def test_concurrent_reservations_never_double_book(self, repo, engine):
        drivers = [_make_driver(repo, rating=float(r)) for r in range(1, 5)]
        workers = 6
        barrier = Barrier(workers)

        def reserve(n):
            with fulfillment.domain_context():
                barrier.wait()
                try:
                    return engine.reserve_driver(ORIGIN, "Baixa", f"del-{n}").id
                except NoCapacityError:
                    return None

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(reserve, range(workers)))

        claimed = [r for r in results if r is not None]
        assert len(claimed) == len(drivers)
        assert len(set(claimed)) == len(drivers)
        assert results.count(None) == workers - len(drivers)


class TestClaimDriver:
    def test_explicit_claim(self, repo, engine):
        driver = _make_driver(repo)
        claimed = engine.claim_driver(driver.id, "del-1")
        assert claimed.active_delivery_id == "del-1"

    def test_unknown_driver(self, engine):
        with pytest.raises(ObjectNotFoundError):
            engine.claim_driver("missing", "del-1")

    def test_busy_driver(self, repo, engine):
        driver = _make_driver(repo, is_available=False)
        with pytest.raises(NoCapacityError):
            engine.claim_driver(driver.id, "del-1")

    def test_unverified_driver(self, repo, engine):
        driver = _make_driver(repo, is_verified=False)
        with pytest.raises(NoCapacityError):
            engine.claim_driver(driver.id, "del-1")


class TestReleaseDriver:
    def test_release_makes_available(self, repo, engine):
        driver = _make_driver(repo)
        engine.claim_driver(driver.id, "del-1")

        assert engine.release_driver(driver.id) is True
        stored = repo.get(driver.id)
        assert stored.is_available is True
        assert stored.active_delivery_id is None

    def test_release_is_idempotent(self, repo, engine):
        driver = _make_driver(repo)
        assert engine.release_driver(driver.id) is False
        assert repo.get(driver.id).is_available is True

    def test_release_scoped_to_delivery(self, repo, engine):
        driver = _make_driver(repo)
        engine.claim_driver(driver.id, "del-2")

        assert engine.release_driver(driver.id, "del-1") is False
        assert repo.get(driver.id).active_delivery_id == "del-2"


class TestReassign:
    def test_auto_reassign_excludes_current_driver(self, repo, engine):
        current = _make_driver(repo, rating=5.0)
        other = _make_driver(repo, rating=3.0)
        engine.claim_driver(current.id, "del-1")
        # Release so the current driver would otherwise be the top candidate
        repo.release(current.id)

        new_driver, result = engine.reassign("del-1", current.id, ORIGIN, "Baixa", rebind=lambda d: "rebound")

        assert new_driver.id == other.id
        assert result == "rebound"

    def test_previous_driver_released_after_rebind(self, repo, engine):
        current = _make_driver(repo, rating=5.0)
        other = _make_driver(repo, rating=3.0)
        engine.claim_driver(current.id, "del-1")

        engine.reassign("del-1", current.id, ORIGIN, "Baixa", rebind=lambda d: None)

        assert repo.get(current.id).is_available is True
        assert repo.get(other.id).active_delivery_id == "del-1"

    def test_explicit_driver(self, repo, engine):
        current = _make_driver(repo)
        chosen = _make_driver(repo, rating=1.0)
        engine.claim_driver(current.id, "del-1")

        new_driver, _ = engine.reassign(
            "del-1", current.id, ORIGIN, "Baixa", rebind=lambda d: None, explicit_driver_id=chosen.id
        )

        assert new_driver.id == chosen.id

    def test_failed_rebind_releases_new_driver(self, repo, engine):
        current = _make_driver(repo, rating=5.0)
        other = _make_driver(repo, rating=3.0)
        engine.claim_driver(current.id, "del-1")

        def rebind(driver):
            raise RuntimeError("write failed")

        with pytest.raises(RuntimeError):
            engine.reassign("del-1", current.id, ORIGIN, "Baixa", rebind=rebind)

        assert repo.get(other.id).is_available is True
        assert repo.get(current.id).active_delivery_id == "del-1"

    def test_no_replacement_keeps_current_driver(self, repo, engine):
        current = _make_driver(repo)
        engine.claim_driver(current.id, "del-1")

        with pytest.raises(NoCapacityError):
            engine.reassign("del-1", current.id, ORIGIN, "Baixa", rebind=lambda d: None)

        assert repo.get(current.id).active_delivery_id == "del-1"

    def test_auto_reassign_needs_origin(self, repo, engine):
        current = _make_driver(repo)
        with pytest.raises(ValidationError):
            engine.reassign("del-1", current.id, None, "Baixa", rebind=lambda d: None)
