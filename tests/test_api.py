from conftest import AMOUNT, FAUCET_ADDRESS, FEE, INTERVAL, MAINNET_ADDRESS, USER_ADDRESS
from treasury import NodeUnavailable, RejectedByNode

IP = {"X-Forwarded-For": "1.2.3.4"}


def test_index_page(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "Faucet" in resp.text


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "message": "Kaspa faucet is running"}


def test_status(client, treasury):
    treasury.balance = 250_000_000
    resp = client.get("/status", headers=IP)

    assert resp.status_code == 200
    assert resp.json() == {
        "active": True,
        "faucet_address": FAUCET_ADDRESS,
        "balance_kas": "2.50000000",
        "next_claim_seconds": 0,
    }


def test_status_inactive_when_balance_below_one_claim(client, treasury):
    treasury.balance = AMOUNT - 1
    assert client.get("/status").json()["active"] is False


def test_status_active_only_when_claim_and_fee_are_covered(client, treasury):
    treasury.balance = AMOUNT + FEE - 1
    assert client.get("/status").json()["active"] is False
    assert client.post("/claim", json={"address": USER_ADDRESS}, headers=IP).json()["error"] == "insufficient_funds"

    treasury.balance = AMOUNT + FEE
    assert client.get("/status").json()["active"] is True
    assert client.post("/claim", json={"address": USER_ADDRESS}, headers=IP).status_code == 200


def test_status_unreachable_node_hides_details(client, treasury):
    treasury.balance_error = NodeUnavailable("GET http://10.9.8.7:16210/addresses failed: ConnectError")
    resp = client.get("/status")

    assert resp.status_code == 500
    assert resp.json()["error"] == "treasury_unavailable"
    assert "10.9.8.7" not in resp.text
    assert "ConnectError" not in resp.text


def test_claim_cooldown_scenario(client, clock, treasury):
    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 200
    body = resp.json()
    assert body["amount_kas"] == "1.00000000"
    assert body["next_claim_seconds"] == INTERVAL
    assert len(body["transaction_id"]) == 64

    clock.advance(10)
    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 429
    assert resp.json()["retry_after_seconds"] == 3590
    assert resp.headers["Retry-After"] == "3590"

    clock.advance(3600)
    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 200
    assert len(treasury.submissions) == 2


def test_status_reports_caller_cooldown(client, clock):
    client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    clock.advance(100)

    assert client.get("/status", headers=IP).json()["next_claim_seconds"] == INTERVAL - 100
    assert client.get("/status", headers={"X-Forwarded-For": "5.6.7.8"}).json()["next_claim_seconds"] == 0


def test_status_balance_reflects_payout(client, treasury):
    treasury.balance = 500_000_000
    client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)

    assert client.get("/status").json()["balance_kas"] == "3.99998000"


def test_identity_uses_first_forwarded_address(client, app):
    client.post("/claim", json={"address": USER_ADDRESS}, headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.1"})
    assert app.state.rate_limiter.peek("9.9.9.9") == INTERVAL
    assert app.state.rate_limiter.peek("10.0.0.1") == 0


def test_invalid_address_is_400_without_state_change(client, app, treasury):
    corrupted = USER_ADDRESS[:-1] + ("q" if USER_ADDRESS[-1] != "q" else "p")
    for address in ["kaspatest:notanaddress", MAINNET_ADDRESS, corrupted]:
        resp = client.post("/claim", json={"address": address}, headers=IP)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_address"

    assert len(app.state.rate_limiter) == 0
    assert treasury.submissions == []


def test_malformed_body_is_400(client):
    assert client.post("/claim", json={}, headers=IP).status_code == 400
    assert client.post("/claim", json={"address": 5}, headers=IP).status_code == 400
    resp = client.post("/claim", content=b"not json", headers={**IP, "Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


def test_insufficient_funds_scenario(client, treasury):
    treasury.balance = 50_000_000

    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 500
    assert resp.json()["error"] == "insufficient_funds"

    # the reservation was released: the retry is processed, not rate limited
    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 500
    assert resp.json()["error"] == "insufficient_funds"

    treasury.balance = 10 * AMOUNT
    assert client.post("/claim", json={"address": USER_ADDRESS}, headers=IP).status_code == 200


def test_failed_submission_allows_immediate_retry(client, treasury):
    treasury.submit_error = RejectedByNode("script error at node 10.9.8.7")

    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=IP)
    assert resp.status_code == 500
    assert resp.json()["error"] == "treasury_unavailable"
    assert "10.9.8.7" not in resp.text

    treasury.submit_error = None
    assert client.post("/claim", json={"address": USER_ADDRESS}, headers=IP).status_code == 200


def test_transaction_lookup(client, treasury):
    txid = "ab" * 32
    treasury.confirmations[txid] = True

    assert client.get(f"/transactions/{txid}").json() == {"transaction_id": txid, "accepted": True}
    assert client.get(f"/transactions/{'cd' * 32}").status_code == 404
    assert client.get("/transactions/xyz").status_code == 400


def test_flood_guard_applies_per_identity(client):
    headers = {"X-Forwarded-For": "7.7.7.7"}
    codes = [client.post("/claim", json={"address": USER_ADDRESS}, headers=headers).status_code
             for _ in range(11)]
    assert codes[0] == 200
    assert codes[1:10] == [429] * 9
    assert codes[10] == 429

    resp = client.post("/claim", json={"address": USER_ADDRESS}, headers=headers)
    assert resp.status_code == 429
    assert resp.json()["error"] == "rate_limited"
    assert resp.json()["retry_after_seconds"] == 60
    assert resp.headers["Retry-After"] == "60"

    other = client.post("/claim", json={"address": USER_ADDRESS}, headers={"X-Forwarded-For": "8.8.8.8"})
    assert other.status_code == 200


def test_shutdown_closes_treasury(app, treasury):
    from fastapi.testclient import TestClient

    with TestClient(app):
        pass
    assert treasury.closed
