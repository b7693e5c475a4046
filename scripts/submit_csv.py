#!/usr/bin/env python3
"""
Submit a CSV prediction file to a running scoring API and print the result.

Usage:
  python scripts/submit_csv.py <task_id> <user_id> predictions.csv
"""

import os
import sys

import requests

API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")


def submit_csv(task_id: str, user_id: str, path: str) -> bool:
    if not os.path.exists(path):
        print(f"❌ File not found: {path}")
        return False

    with open(path, "rb") as f:
        try:
            response = requests.post(
                f"{API_BASE_URL}/api/tasks/{task_id}/submit",
                files={"file": (os.path.basename(path), f, "text/csv")},
                data={"user_id": user_id},
                timeout=120,
            )
        except requests.RequestException as e:
            print(f"❌ Request failed: {e}")
            return False

    try:
        body = response.json()
    except ValueError:
        print(f"❌ HTTP {response.status_code}: {response.text[:500]}")
        return False
    if response.status_code != 200:
        print(f"❌ {body.get('error')}: {body.get('message')}")
        return False

    score = body.get("score")
    print(f"✅ Submission {body['submission_id']} ({body['status']})")
    if score is not None:
        direction = "higher" if body["higher_is_better"] else "lower"
        print(f"   {body['metric']} = {score:.6f} ({direction} is better)")
    print(f"   Remaining submissions today: {body['remaining_submissions_today']}")
    return True


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(2)
    success = submit_csv(sys.argv[1], sys.argv[2], sys.argv[3])
    sys.exit(0 if success else 1)
