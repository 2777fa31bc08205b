from __future__ import annotations

import os
import time
import uuid

import requests
from rich import print

from homeinv.auth.tokens import issue_access_token

BASE = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
WEBHOOK_TOKEN = os.getenv("WEBHOOK_AUTH_TOKEN")

def post(path: str, *, json: dict | None = None, headers: dict | None = None) -> requests.Response:
    h = {"content-type": "application/json", **(headers or {})}
    return requests.post(f"{BASE}{path}", headers=h, json=json, timeout=10)

def get(path: str, *, jwt: str | None = None) -> requests.Response:
    headers = {}
    if jwt:
        headers["authorization"] = f"bearer {jwt}"
    return requests.get(f"{BASE}{path}", headers=headers, timeout=30)

def send_event(event: dict) -> requests.Response:
    headers = {"authorization": f"Bearer {WEBHOOK_TOKEN}"} if WEBHOOK_TOKEN else {}
    return post("/webhooks/subscriptions", json={"event": event}, headers=headers)

def main() -> None:
    user_id = f"demo_{uuid.uuid4().hex[:8]}"
    jwt = issue_access_token(user_id)

    print("[bold]status before any event[/bold]")
    print(get("/subscription/me", jwt=jwt).json())

    event = {
        "id": f"evt_demo_{int(time.time())}",
        "type": "INITIAL_PURCHASE",
        "app_user_id": user_id,
        "product_id": "rc_pro_monthly",
        "expiration_at_ms": int((time.time() + 30 * 86400) * 1000),
    }
    print("[bold]initial purchase[/bold]", send_event(event).json())
    print("[bold]redelivery[/bold]", send_event(event).json())
    print(get("/subscription/me", jwt=jwt).json())

    print("[bold]expiration[/bold]", send_event({**event, "id": f"{event['id']}_exp", "type": "EXPIRATION"}).json())
    print(get("/subscription/me", jwt=jwt).json())

    print("[bold]admin stats[/bold]")
    print(get("/admin/subscription-stats").json())

    print("[bold]barcode lookups[/bold]")
    for upc in ("9780140328721", "737628064502"):
        r = get(f"/items/barcode/{upc}", jwt=jwt)
        print(upc, r.status_code, r.json())

if __name__ == "__main__":
    main()
