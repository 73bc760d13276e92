import json
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
REF = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Pending Payments ===")
if REF:
    cur.execute(
        "SELECT session_key, merchant_reference, order_tracking_id, order_id, amount, status_checks, expires_at FROM pending_payments WHERE merchant_reference=?",
        (REF,),
    )
else:
    cur.execute(
        "SELECT session_key, merchant_reference, order_tracking_id, order_id, amount, status_checks, expires_at FROM pending_payments ORDER BY created_at DESC LIMIT 20"
    )
for r in cur.fetchall():
    print(
        {
            "session_key": r[0],
            "merchant_reference": r[1],
            "order_tracking_id": r[2],
            "order_id": r[3],
            "amount": r[4],
            "status_checks": r[5],
            "expires_at": r[6],
        }
    )

print("\n=== Recent Orders ===")
if REF:
    cur.execute(
        "SELECT id, status, payment_status, payment_reference, total, order_date, data FROM orders WHERE payment_reference=?",
        (REF,),
    )
else:
    cur.execute(
        "SELECT id, status, payment_status, payment_reference, total, order_date, data FROM orders ORDER BY order_date DESC LIMIT 20"
    )
for r in cur.fetchall():
    data = r[6]
    try:
        data = json.loads(data) if isinstance(data, str) else data
    except ValueError:
        pass
    print(r[:6], data)

print("\n=== Customers with duplicate phones ===")
cur.execute("SELECT phone, COUNT(*) FROM customers GROUP BY phone HAVING COUNT(*) > 1")
for r in cur.fetchall():
    print(r)

conn.close()
