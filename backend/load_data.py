"""
Data Loader Script - Registers trainers from trainers_seed.json via the API.

Signs in as an operator, then posts each seed record to the admin
registration endpoint. Certification numbers are issued by the server.

Usage:
    python load_data.py                              # Uses default URL
    python load_data.py http://localhost:8000         # Custom API URL

Credentials come from ADMIN_EMAIL / ADMIN_PASSWORD.
"""

import json
import sys
import os

import httpx


def login(client: httpx.Client, api_url: str) -> str:
    resp = client.post(f"{api_url}/api/auth/login", json={
        "email": os.getenv("ADMIN_EMAIL", "admin@registry.local"),
        "password": os.getenv("ADMIN_PASSWORD", ""),
    })
    if resp.status_code != 200:
        print(f"Login failed ({resp.status_code}): {resp.json().get('detail')}")
        sys.exit(1)
    return resp.json()["access_token"]


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")

    data_file = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "trainers_seed.json")
    if not os.path.exists(data_file):
        data_file = "trainers_seed.json"

    if not os.path.exists(data_file):
        print("Error: Could not find trainers_seed.json")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, 'r') as f:
        records = json.load(f)

    print(f"Found {len(records)} trainers to register")
    print(f"Sending to: {api_url}/api/admin/trainers")
    print()

    registered, failed = [], []
    with httpx.Client(timeout=30.0) as client:
        token = login(client, api_url)
        headers = {"Authorization": f"Bearer {token}"}

        for record in records:
            resp = client.post(f"{api_url}/api/admin/trainers", json=record, headers=headers)
            if resp.status_code == 201:
                registered.append(resp.json())
            else:
                failed.append((record.get("full_name", "?"), resp.json().get("detail", resp.text)))

    print("=" * 60)
    print("REGISTRATION SUMMARY")
    print("=" * 60)
    print(f"  Total Records:  {len(records)}")
    print(f"  Registered:     {len(registered)}")
    print(f"  Failed:         {len(failed)}")
    print("=" * 60)
    print()

    for trainer in registered:
        print(f"  ✅ {trainer['certification_id']}: {trainer['full_name']}")
    for name, reason in failed:
        print(f"  ❌ {name}: {reason}")

    print()
    print("✅ Data loading complete!")


if __name__ == "__main__":
    main()
