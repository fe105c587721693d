"""
Locust Load Test Suite

Users are provisioned by the identity service, so the load test mints
bearer tokens itself from SECRET_KEY for a range of existing user ids:

  LOAD_USER_ID_START=1 LOAD_USER_COUNT=500 \
  LOAD_EVENT_ID=42 \
  locust -f locustfile.py --host http://localhost:8000

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many users, few seats
  locust -f locustfile.py --tags throughput   # Cached reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import itertools
import os
import random

from locust import HttpUser, task, between, tag, events

from events_platform.core.security import create_access_token

USER_ID_START = int(os.environ.get("LOAD_USER_ID_START", "1"))
USER_COUNT = int(os.environ.get("LOAD_USER_COUNT", "100"))
CONCURRENCY_EVENT_ID = int(os.environ.get("LOAD_EVENT_ID", "0")) or None

EVENT_IDS = []
_user_ids = itertools.cycle(range(USER_ID_START, USER_ID_START + USER_COUNT))


def next_user_headers() -> dict:
    token = create_access_token(data={"sub": str(next(_user_ids))})
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Users {USER_ID_START}..{USER_ID_START + USER_COUNT - 1}, "
          f"concurrency event: {CONCURRENCY_EVENT_ID or 'not set'}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users -> an event with few seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM event_registrations
       WHERE event_id = X AND status = 'registered';
    Should equal max_attendees, and events.tickets_remaining should be 0.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = next_user_headers()

    @tag("concurrency")
    @task
    def register_for_limited_event(self):
        """All users fight for the same seats."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(f"/api/v1/events/{CONCURRENCY_EVENT_ID}/register",
            json={},
            headers=self.headers,
            name="/api/v1/events/{id}/register",
            catch_response=True
        ) as resp:
            if resp.status_code in (200, 201):
                resp.success()
            elif resp.status_code == 400:
                resp.success()  # Expected: sold out or already registered
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare avg response time, requests/sec, P95/P99 latency.
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
    @task(5)
    def check_availability(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}/availability",
                name="/api/v1/events/{id}/availability [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

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

    def on_start(self):
        self.headers = next_user_headers()

    def _expect(self, method, url, allowed, **kwargs):
        with self.client.request(method, url, catch_response=True, **kwargs) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self._expect("POST", "/api/v1/events/999999/register", [404],
            json={}, headers=self.headers, name="/api/v1/events/[missing]/register")

    @tag("edge")
    @task
    def cancel_unknown_registration(self):
        self._expect("PATCH", "/api/v1/events/registrations/999999/cancel", [404],
            headers=self.headers, name="/api/v1/events/registrations/[missing]/cancel")

    @tag("edge")
    @task
    def unknown_ticket(self):
        self._expect("GET", "/api/v1/tickets/verify/NOT-A-CODE", [404],
            name="/api/v1/tickets/verify/[missing]")

    @tag("edge")
    @task
    def forged_webhook(self):
        self._expect("POST", "/api/v1/payments/webhook", [400, 503],
            data='{"type": "checkout.session.completed"}',
            headers={"Stripe-Signature": "t=1,v1=forged"})

    @tag("edge")
    @task
    def malformed_json(self):
        self._expect("POST", f"/api/v1/events/{CONCURRENCY_EVENT_ID or 1}/register", [400, 422],
            data="not json at all",
            headers={**self.headers, "Content-Type": "application/json"},
            name="/api/v1/events/{id}/register [malformed]")

    @tag("edge")
    @task
    def missing_auth(self):
        self._expect("POST", f"/api/v1/events/{CONCURRENCY_EVENT_ID or 1}/register", [401],
            json={}, name="/api/v1/events/{id}/register [no auth]")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some registrations and cancellations
      - Checking own tickets
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = next_user_headers()
        self.registration_ids = []

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
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def register(self):
        if not EVENT_IDS:
            return
        with self.client.post(f"/api/v1/events/{random.choice(EVENT_IDS)}/register",
            json={},
            headers=self.headers,
            name="/api/v1/events/{id}/register",
            catch_response=True
        ) as resp:
            if resp.status_code in (200, 201):
                self.registration_ids.append(resp.json()["registration"]["id"])
                resp.success()
            elif resp.status_code == 400:
                resp.success()

    @task(3)
    def cancel(self):
        if self.registration_ids:
            registration_id = self.registration_ids.pop()
            self.client.patch(f"/api/v1/events/registrations/{registration_id}/cancel",
                headers=self.headers,
                name="/api/v1/events/registrations/{id}/cancel")
