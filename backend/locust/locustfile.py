"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling under contention
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_CAPACITY = 10


def _future_date() -> str:
    return (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()


def _create_event(client, title: str, total_capacity: int, **capacity):
    resp = client.post("/api/v1/events/", json={
        "title": title,
        "description": f"{total_capacity} seats",
        "date": _future_date(),
        "location": "Load Test",
        "organizer_id": 1,
    })
    if resp.status_code != 201:
        return None
    event_id = resp.json()["id"]
    client.put(f"/api/v1/capacity/events/{event_id}", json={
        "total_capacity": total_capacity,
        **capacity,
    })
    return event_id


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: Creating concurrency test event...")
    print("="*60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    if CONCURRENCY_EVENT_ID:
        print(f"\nVerify: GET /api/v1/capacity/events/{CONCURRENCY_EVENT_ID}")
        print(f"blocked_capacity must be <= {CONCURRENCY_CAPACITY}\n")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 organizers -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT blocked_capacity FROM capacities WHERE event_id = X;
    Should be <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.organizer_id = random.randint(1, 100000)
        if not CONCURRENCY_EVENT_ID:
            event_id = _create_event(self.client, "Concurrency Test Event", CONCURRENCY_CAPACITY)
            if event_id:
                globals()["CONCURRENCY_EVENT_ID"] = event_id
                print(f"\nCreated event {event_id} with {CONCURRENCY_CAPACITY} seats\n")

    @tag("concurrency")
    @task
    def reserve_limited_seats(self):
        """All organizers fight for the same 10 seats."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post("/api/v1/reservations/",
            json={"event_id": CONCURRENCY_EVENT_ID, "quantity": 1, "organizer_id": self.organizer_id},
            name="/api/v1/reservations/ [contended]",
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out or contention
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(3)
    def get_capacity_status(self):
        """Real-time counters, never cached."""
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/capacity/events/{event_id}",
                name="/api/v1/capacity/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, payload, codes, name):
        with self.client.post("/api/v1/reservations/",
            json=payload,
            name=name,
            catch_response=True
        ) as resp:
            if resp.status_code in codes:
                resp.success()
            else:
                resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self._expect({"event_id": 999999, "quantity": 1, "organizer_id": 1}, [404], "edge: unknown event")

    @tag("edge")
    @task
    def zero_quantity(self):
        self._expect({"event_id": 1, "quantity": 0, "organizer_id": 1}, [422], "edge: zero quantity")

    @tag("edge")
    @task
    def huge_group(self):
        self._expect({"event_id": 1, "quantity": 999999, "organizer_id": 1}, [409, 422], "edge: huge group")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/reservations/",
            data="not json at all",
            name="edge: malformed json",
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def confirm_unknown_reservation(self):
        with self.client.post("/api/v1/reservations/GRP-20000101-00000/confirm",
            name="edge: confirm unknown",
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some reservations, most paid, some abandoned
      - Rare event creation
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.organizer_id = random.randint(1, 100000)

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

    @task(10)
    def reserve_and_maybe_pay(self):
        if not EVENT_IDS:
            return
        with self.client.post("/api/v1/reservations/",
            json={
                "event_id": random.choice(EVENT_IDS),
                "quantity": random.randint(1, 8),
                "organizer_id": self.organizer_id,
                "base_price": "20.00",
            },
            name="/api/v1/reservations/",
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 404, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
                return
        if resp.status_code != 201:
            return

        # Abandoned reservations are left for the reconciliation sweep
        if random.random() < 0.8:
            code = resp.json()["group_code"]
            self.client.post(f"/api/v1/reservations/{code}/confirm",
                json={"payment_reference": f"load-{code}"},
                name="/api/v1/reservations/{code}/confirm")

    @task(1)
    def create_event(self):
        event_id = _create_event(
            self.client,
            f"Load Event {random.randint(1, 999999)}",
            random.randint(50, 500),
            overbooking_enabled=random.random() < 0.3,
            overbooking_percentage=10,
        )
        if event_id:
            EVENT_IDS.append(event_id)
