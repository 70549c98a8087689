"""Sign and post a sample pull-request payload to a running gateway.

Usage: python scripts/send_test_webhook.py <webhook_id> [secret]
Set GATEWAY_URL to target something other than http://127.0.0.1:8005/webhooks.
"""

import json
import os
import sys

import httpx

from integration_engine.utils.crypto import compute_signature

GATEWAY_URL = os.getenv("GATEWAY_URL", "http://127.0.0.1:8005/webhooks")

payload = {
    "action": "opened",
    "pull_request": {
        "title": "Test PR",
        "body": "Sent by send_test_webhook.py",
        "html_url": "https://github.com/myuser/myrepo/pull/1",
    },
    "repository": {"name": "myrepo", "full_name": "myuser/myrepo"},
}


def main() -> int:
    if len(sys.argv) < 2:
        print(__doc__)
        return 1

    webhook_id = sys.argv[1]
    secret = sys.argv[2] if len(sys.argv) > 2 else os.getenv("WEBHOOK_SECRET")
    data = json.dumps(payload).encode("utf-8")

    headers = {
        "Content-Type": "application/json",
        "X-Event-Type": "pull_request",
    }
    if secret:
        headers["X-Hub-Signature-256"] = "sha256=" + compute_signature(secret, data)

    response = httpx.post(f"{GATEWAY_URL}/{webhook_id}", content=data, headers=headers)
    print("Status:", response.status_code)
    print("Response:", response.json())
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
