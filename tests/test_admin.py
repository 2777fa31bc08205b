from homeinv.config import settings

def post_event(client, event_type: str, app_user_id: str, product_id: str | None = None) -> None:
    event = {"type": event_type, "app_user_id": app_user_id}
    if product_id:
        event["product_id"] = product_id
    r = client.post("/webhooks/subscriptions", json={"event": event})
    assert r.status_code == 200, r.text

def test_subscription_stats_counts_by_status_and_plan(client, subscriber_id):
    before = client.get("/admin/subscription-stats").json()

    post_event(client, "INITIAL_PURCHASE", f"{subscriber_id}_a", "rc_pro_monthly")
    post_event(client, "RENEWAL", f"{subscriber_id}_b", "rc_pro_annual")
    post_event(client, "CANCELLATION", f"{subscriber_id}_c", "rc_pro_annual")
    post_event(client, "EXPIRATION", f"{subscriber_id}_d")

    r = client.get("/admin/subscription-stats")
    assert r.status_code == 200, r.text
    after = r.json()

    assert after["total"] - before["total"] == 4
    assert after["active"] - before["active"] == 2
    assert after["canceled"] - before["canceled"] == 1
    assert after["expired"] - before["expired"] == 1
    assert after["free"] == before["free"]
    assert after["byPlan"]["pro_monthly"] - before["byPlan"].get("pro_monthly", 0) == 1
    assert after["byPlan"]["pro_annual"] - before["byPlan"].get("pro_annual", 0) == 2

def test_admin_token_is_enforced_when_configured(client):
    settings.admin_api_token = "adm_secret"

    assert client.get("/admin/subscription-stats").status_code == 403
    assert client.get("/admin/webhook-dead-letters", headers={"x-admin-token": "nope"}).status_code == 403

    r = client.get("/admin/subscription-stats", headers={"x-admin-token": "adm_secret"})
    assert r.status_code == 200
    r = client.get("/admin/webhook-dead-letters", headers={"x-admin-token": "adm_secret"})
    assert r.status_code == 200
