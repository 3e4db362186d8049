"""Tests for the driver repository's conditional writes."""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from drivers.driver.driver import Driver
from fulfillment.domain import fulfillment
from protean import current_domain
from shared.errors import ObjectNotFoundError
from shared.value_objects import Coordinates


@pytest.fixture()
def repo():
    return current_domain.repository_for(Driver)


@pytest.fixture()
def driver(repo):
    return repo.add(Driver.register(user_id="user-1", license_number="MZ-0001", is_verified=True))


class TestConditionalClaim:
    def test_claim_binds_delivery(self, repo, driver):
        claimed = repo.conditional_claim(driver.id, "del-1")

        assert claimed.is_available is False
        assert claimed.active_delivery_id == "del-1"
        assert claimed.total_deliveries == 1

    def test_second_claim_fails(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")
        assert repo.conditional_claim(driver.id, "del-2") is None
        assert repo.get(driver.id).total_deliveries == 1

    def test_unverified_driver_not_claimable(self, repo):
        pending = repo.add(Driver.register(user_id="user-2", license_number="MZ-0002"))
        assert repo.conditional_claim(pending.id, "del-1") is None

    def test_unknown_driver(self, repo):
        with pytest.raises(ObjectNotFoundError):
            repo.conditional_claim("missing", "del-1")

    def test_concurrent_claims_single_winner(self, repo, driver):
        workers = 10
        barrier = Barrier(workers)

        def claim(n):
            with fulfillment.domain_context():
                barrier.wait()
                return current_domain.repository_for(Driver).conditional_claim(driver.id, f"del-{n}")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(claim, range(workers)))

        assert sum(r is not None for r in results) == 1
        assert repo.get(driver.id).total_deliveries == 1


class TestRelease:
    def test_release_frees_driver(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")

        assert repo.release(driver.id, "del-1") is True
        released = repo.get(driver.id)
        assert released.is_available is True
        assert released.active_delivery_id is None

    def test_release_is_idempotent(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")
        repo.release(driver.id, "del-1")

        assert repo.release(driver.id, "del-1") is False

    def test_release_for_other_delivery_ignored(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")

        assert repo.release(driver.id, "del-2") is False
        assert repo.get(driver.id).active_delivery_id == "del-1"


class TestCompleteDelivery:
    def test_updates_counters_and_mean(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")
        first = repo.complete_delivery(driver.id, "del-1", 30.0)

        assert first.is_available is True
        assert first.completed_deliveries == 1
        assert first.average_delivery_time == 30.0

        repo.conditional_claim(driver.id, "del-2")
        second = repo.complete_delivery(driver.id, "del-2", 20.0)

        assert second.completed_deliveries == 2
        assert second.average_delivery_time == 25.0

    def test_requires_binding(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")
        assert repo.complete_delivery(driver.id, "del-other", 10.0) is None
        assert repo.get(driver.id).completed_deliveries == 0

    def test_completing_twice_counts_once(self, repo, driver):
        repo.conditional_claim(driver.id, "del-1")
        repo.complete_delivery(driver.id, "del-1", 10.0)

        assert repo.complete_delivery(driver.id, "del-1", 10.0) is None
        assert repo.get(driver.id).completed_deliveries == 1


class TestUpdateLocation:
    def test_location_recorded(self, repo, driver):
        updated = repo.update_location(driver.id, Coordinates(lat=-25.95, lng=32.58))

        assert updated.coordinates == Coordinates(lat=-25.95, lng=32.58)
        assert updated.location.last_updated is not None


class TestRecordRating:
    def test_first_rating_becomes_average(self, repo, driver):
        rated = repo.record_rating(driver.id, 4)

        assert rated.rating == 4.0
        assert rated.review_count == 1

    def test_running_mean_over_reviews(self, repo, driver):
        for rating in (5, 4, 3):
            rated = repo.record_rating(driver.id, rating)

        assert rated.review_count == 3
        assert rated.rating == 4.0

    def test_mean_rounded_to_two_places(self, repo, driver):
        repo.record_rating(driver.id, 5)
        repo.record_rating(driver.id, 4)
        rated = repo.record_rating(driver.id, 4)

        assert rated.rating == 4.33

    def test_concurrent_ratings_all_counted(self, repo, driver):
        workers = 6
        barrier = Barrier(workers)

        def rate(_):
            with fulfillment.domain_context():
                barrier.wait()
                return current_domain.repository_for(Driver).record_rating(driver.id, 5)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(rate, range(workers)))

        stored = repo.get(driver.id)
        assert stored.review_count == workers
        assert stored.rating == 5.0


class TestSetVerified:
    def test_toggles_flag(self, repo):
        pending = repo.add(Driver.register(user_id="user-2", license_number="MZ-0002"))

        assert repo.set_verified(pending.id, True).is_verified is True
        assert repo.set_verified(pending.id, False).is_verified is False

    def test_unchanged_state_returns_none(self, repo, driver):
        assert repo.set_verified(driver.id, True) is None
