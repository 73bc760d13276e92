import os
import sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import requests
import concurrent.futures
import argparse
import json

BASE = os.environ.get("BAKERY_BASE", "http://127.0.0.1:8000")

PHONE_FORMATS = ["0700123456", "+256700123456", "256 700 123 456", "700123456"]


def checkout_task(i, product_id, phone):
    session = requests.Session()
    try:
        r = session.post(f"{BASE}/api/cart/items", json={"product_id": product_id, "qty": 1}, timeout=10)
        if r.status_code != 200:
            return (i, "cart", r.status_code, r.text)
        billing = {"full_name": f"Load Test {i}", "phone": phone, "city": "Kampala"}
        r = session.post(f"{BASE}/api/checkout", json=billing, timeout=30)
        return (i, "checkout", r.status_code, r.text)
    except Exception as e:
        return (i, "checkout", "ERR", str(e))


def customer_of(order_id):
    r = requests.get(f"{BASE}/api/orders/{order_id}", timeout=10)
    return r.json().get("customer_id") if r.status_code == 200 else None


def run_concurrent_checkout(workers, product_id):
    print(f"Running checkout test: workers={workers}, product={product_id}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [
            ex.submit(checkout_task, i, product_id, PHONE_FORMATS[i % len(PHONE_FORMATS)])
            for i in range(workers)
        ]
        results = [f.result() for f in futures]
    print("Results:")
    for r in results:
        print(r)
    order_ids = [json.loads(r[3]).get("order_id") for r in results if r[2] == 200]
    customers = {customer_of(o) for o in order_ids}
    # every phone format above is the same number: expect exactly one customer
    print("Unique customer ids:", customers)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fire parallel checkouts for one phone number.")
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--product", default="artisan-sourdough")
    args = parser.parse_args()

    run_concurrent_checkout(args.workers, args.product)
