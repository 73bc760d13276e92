#!/usr/bin/env python3
"""
Register the IPN URL with PesaPal and print the notification id to put in
PESAPAL_IPN_ID. With --list, show the IPN URLs already registered.

Usage:
    python tools/register_ipn.py https://shop.example.com/api/payments/ipn
    python tools/register_ipn.py --list
"""
import argparse
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from bakery.adapters.pesapal import build_client
from bakery.errors import CheckoutError


def main():
    parser = argparse.ArgumentParser(description="Manage PesaPal IPN registrations.")
    parser.add_argument("url", nargs="?", help="public URL of /api/payments/ipn")
    parser.add_argument("--method", default="GET", choices=["GET", "POST"])
    parser.add_argument("--list", action="store_true")
    args = parser.parse_args()

    client = build_client()
    try:
        if args.list:
            for ipn in client.list_ipns():
                print(f"{ipn.get('ipn_id')}  {ipn.get('ipn_notification_type_description')}  {ipn.get('url')}")
            return 0
        if not args.url:
            parser.error("url is required unless --list is given")
        data = client.register_ipn(args.url, args.method)
    except CheckoutError as e:
        print(f"PesaPal request failed: {e.message}")
        return 1
    print(f"ipn_id={data.get('ipn_id')}")
    print("Set PESAPAL_IPN_ID to this value in .env")
    return 0


if __name__ == "__main__":
    sys.exit(main())
