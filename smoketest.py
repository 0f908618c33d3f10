#!/usr/bin/env python3
"""
Smoke check against a running STOLEN matching API (python run_api.py).

Registers a lost and a found phone a few hundred meters apart, then checks
that the auto-created match can be listed and moved through its lifecycle.
"""

import sys
import uuid

import requests

API_BASE_URL = "http://localhost:8000"


def post(path: str, payload: dict) -> dict:
    response = requests.post(f"{API_BASE_URL}{path}", json=payload, timeout=10)
    response.raise_for_status()
    return response.json()


def main() -> int:
    try:
        requests.get(f"{API_BASE_URL}/", timeout=5).raise_for_status()
    except requests.exceptions.RequestException as e:
        print(f"❌ API is not reachable at {API_BASE_URL}: {e}")
        return 1
    print("✅ API is running")

    suffix = uuid.uuid4().hex[:6]
    lost = post("/api/reports", {
        "id": f"lost_smoke_{suffix}",
        "report_type": "lost",
        "device_category": "phone",
        "device_model": "iPhone 15 Pro",
        "description": "black iPhone with cracked screen",
        "location_lat": -26.2041,
        "location_lng": 28.0473,
        "location_address": "Johannesburg CBD",
        "incident_date": "2024-01-01T10:00:00Z",
    })
    print(f"✅ Lost report: {lost['data']['id']}")

    found = post("/api/reports", {
        "id": f"found_smoke_{suffix}",
        "report_type": "found",
        "device_category": "phone",
        "device_model": "iPhone 15 Pro",
        "description": "found black iPhone cracked screen near mall",
        "location_lat": -26.2050,
        "location_lng": 28.0480,
        "location_address": "Carlton Centre",
        "incident_date": "2024-01-01T10:30:00Z",
    })
    if not found["matches"]:
        print("❌ No match was auto-created for the found report")
        return 1
    match = found["matches"][0]
    print(f"✅ Auto-created match {match['id']} (confidence {match['match_confidence']:.2f})")

    for action in ("contact", "verify", "recover"):
        result = post(f"/api/device-matches/{match['id']}", {"action": action})
        print(f"✅ {action} → {result['data']['status']}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
