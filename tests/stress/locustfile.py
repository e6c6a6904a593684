"""
Storefront POS Load Testing with Locust

Seed the target first:
    python -m flask system init
    python -m flask users create --username till1 --password "TestPass123!" --role employee
    python -m flask users create --username stockroom --password "TestPass123!" --role employee --grant accessInventory

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 20 --spawn-rate 5 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1% (a 409 for sold-out stock is an expected outcome, not an error)
"""

import os
import time
import random
from typing import Optional, Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

PASSWORD = os.environ.get("STRESS_PASSWORD", "TestPass123!")
CASHIERS = [u for u in os.environ.get("STRESS_CASHIERS", "till1").split(",") if u]
STOCK_USER = os.environ.get("STRESS_STOCK_USER", "stockroom")


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Per-endpoint counts and latencies, plus how many sales hit sold-out stock."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}
        self.sold_out = 0

    def record(self, name: str, response_time: float, success: bool):
        self.request_counts.setdefault(name, 0)
        self.error_counts.setdefault(name, 0)
        self.response_times.setdefault(name, [])

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name, count in self.request_counts.items():
            times = sorted(self.response_times[name])
            if not times:
                continue
            p95_idx = min(int(len(times) * 0.95), len(times) - 1)
            summary[name] = {
                "count": count,
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / count * 100,
                "avg_ms": sum(times) / len(times),
                "p95_ms": times[p95_idx],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class POSUser(HttpUser):
    """Base POS user that authenticates on start."""
    wait_time = between(0.2, 1)
    abstract = True

    username: Optional[str] = None
    token: Optional[str] = None

    def on_start(self):
        self.login(self.username or random.choice(CASHIERS))

    def login(self, username: str):
        response = self.client.post(
            "/api/auth/login",
            json={"username": username, "password": PASSWORD},
            name="auth/login",
        )
        if response.status_code == 200:
            self.token = response.json().get("token")

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, method: str, path: str, ok_codes=(200,), **kwargs):
        start = time.time()
        response = self.client.request(method, path, headers=self.get_headers(), name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok_codes)
        return response

    def stocked_products(self) -> List[Dict]:
        response = self.timed("products/list", "GET", "/api/products")
        if response.status_code != 200:
            return []
        return [p for p in response.json().get("items", []) if p.get("sizes")]


class BrowsingUser(POSUser):
    """Cashier looking things up between sales."""
    weight = 2

    @task(5)
    def list_products(self):
        self.timed("products/list", "GET", "/api/products")

    @task(3)
    def list_sales(self):
        self.timed("sales/list", "GET", "/api/sales", params={"limit": 20})

    @task(1)
    def whoami(self):
        self.timed("auth/me", "GET", "/api/auth/me")

    @task(1)
    def health_check(self):
        self.timed("system/health", "GET", "/health")


class SalesUser(POSUser):
    """
    Cashier submitting carts.

    Several of these aimed at the same few sizes is the oversell race: every
    response must be 201 or 409, and stock must never read below zero.
    """
    weight = 3

    @task
    def submit_sale(self):
        products = self.stocked_products()
        if not products:
            return

        product = random.choice(products[:5])
        size = random.choice(product["sizes"])
        quantity = random.randint(1, 3)
        total = product["price_cents"] * quantity

        response = self.timed(
            "sales/submit",
            "POST",
            "/api/sales",
            ok_codes=(201, 409),
            json={
                "items": [{
                    "product_id": product["id"],
                    "size": size["size"],
                    "quantity": quantity,
                    "unit_price_cents": product["price_cents"],
                }],
                "total_amount_cents": total,
                "payment_method": random.choice(["cash", "card"]),
            },
        )
        if response.status_code == 409:
            metrics.sold_out += 1

        for p in self.stocked_products():
            for s in p["sizes"]:
                if s["stock"] < 0:
                    metrics.record("invariant/negative_stock", 0, False)


class StockroomUser(POSUser):
    """Restocks sizes so the sales race keeps going."""
    weight = 1
    username = STOCK_USER

    @task
    def restock(self):
        products = self.stocked_products()
        if not products:
            return
        product = random.choice(products[:5])
        size = random.choice(product["sizes"])
        self.timed(
            "products/stock",
            "PUT",
            f"/api/products/{product['id']}/stock",
            json={"size": size["size"], "new_stock": random.randint(0, 10)},
        )


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)
    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    all_pass = True
    for name, stats in sorted(metrics.get_summary().items()):
        p95_threshold = 1000 if name in ("sales/submit", "products/stock") else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1
        all_pass = all_pass and passed
        print(
            f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
            f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]"
        )

    print("-" * 80)
    print(f"Sales rejected for insufficient stock: {metrics.sold_out}")
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
    print("=" * 80)
