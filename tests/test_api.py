"""
End-to-end tests through the HTTP API.
"""
from datetime import timedelta

from models import Square, utcnow
from core.exceptions import StorageError
from core.notifier import get_notifier
from core.round_manager import RoundManager


ALICE = {
    "name": "Alice",
    "email": "alice@example.com",
    "phone": "5551234567",
}


def _reserve(client, squares, **overrides):
    body = {**ALICE, **overrides, "squares": squares}
    return client.post("/api/reserve", json=body)


def _sell(client, squares, **overrides):
    response = _reserve(client, squares, **overrides)
    assert response.status_code == 200, response.text
    participant_id = response.json()["participant"]["id"]
    confirm = client.post(f"/api/confirm-payment/{participant_id}")
    assert confirm.status_code == 200, confirm.text
    return participant_id


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_startup_seeds_round_one(client):
    board = client.get("/api/game").json()

    assert board["game_round"]["round_number"] == 1
    assert board["game_round"]["price_per_square"] == 1000
    assert len(board["squares"]) == 65
    assert board["participants"] == []


def test_scenario_a_reserve_three_squares(client):
    response = _reserve(client, [1, 2, 3])

    assert response.status_code == 200
    participant = response.json()["participant"]
    assert participant["total_amount"] == 3000
    assert participant["payment_status"] == "pending"

    squares = {s["number"]: s for s in client.get("/api/game").json()["squares"]}
    assert all(squares[n]["status"] == "reserved" for n in (1, 2, 3))
    assert client.get("/api/stats").json()["available_count"] == 62


def test_scenario_b_first_selection_wins(client):
    client.post("/api/selections", json={"squares": [5], "action": "select", "session_id": "A"})
    response = client.post("/api/selections", json={"squares": [5], "action": "select", "session_id": "B"})

    assert response.json() == {"success": True, "total_selections": 1}
    selections = client.get("/api/selections").json()["selections"]
    assert [(s["square"], s["session_id"]) for s in selections] == [(5, "A")]


def test_scenario_c_confirm_payment(client):
    participant_id = _reserve(client, [1, 2, 3]).json()["participant"]["id"]

    response = client.post(f"/api/confirm-payment/{participant_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["participant"]["payment_status"] == "paid"
    assert [s["status"] for s in body["squares"]] == ["sold", "sold", "sold"]
    assert client.get("/api/stats").json()["total_revenue"] == 3000


def test_scenario_d_draw_single_sold_square(client):
    _sell(client, [1])

    response = client.post("/api/draw-winner")

    assert response.status_code == 200
    assert response.json()["winner_square"] == 1
    assert response.json()["winner_name"] == "Alice"
    assert client.get("/api/game").json()["game_round"]["status"] == "completed"
    assert client.get("/api/winner").json()["winner"]["square"] == 1

    again = client.post("/api/draw-winner")
    assert again.status_code == 400


def test_scenario_e_reserve_sold_square(client):
    _sell(client, [1])

    response = _reserve(client, [1], name="Carol")

    assert response.status_code == 409
    assert response.json()["detail"]["unavailable_squares"] == [1]
    assert len(client.get("/api/participants").json()) == 1


def test_reserve_validation_errors(client):
    assert _reserve(client, []).status_code == 422
    assert _reserve(client, [66]).status_code == 422
    assert _reserve(client, [1], email="not-an-email").status_code == 422
    assert _reserve(client, [1], phone="123").status_code == 422


def test_reservation_discards_selections(client):
    client.post("/api/selections", json={"squares": [7, 8], "action": "select", "session_id": "A"})

    _reserve(client, [7])

    selections = client.get("/api/selections").json()["selections"]
    assert [s["square"] for s in selections] == [8]


def test_selections_reject_squares_off_the_board(client):
    response = client.post(
        "/api/selections",
        json={"squares": [0, 999, -3], "action": "select", "session_id": "A"}
    )

    assert response.status_code == 400
    assert client.get("/api/selections").json()["selections"] == []


def test_cancel_pending_and_paid(client):
    pending_id = _reserve(client, [10, 11]).json()["participant"]["id"]

    response = client.post(f"/api/cancel-reservation/{pending_id}")
    assert response.json() == {"success": True, "released_squares": [10, 11]}
    assert client.get(f"/api/participant/{pending_id}").status_code == 404

    paid_id = _sell(client, [12])
    assert client.post(f"/api/cancel-reservation/{paid_id}").status_code == 400
    assert client.post("/api/cancel-reservation/nobody").status_code == 404


def test_confirm_missing_participant(client):
    assert client.post("/api/confirm-payment/nobody").status_code == 404


def test_manual_winner(client):
    _sell(client, [20])

    assert client.post("/api/manual-winner", json={"square_number": 21}).status_code == 400
    assert client.post("/api/manual-winner", json={"square_number": 0}).status_code == 400

    response = client.post("/api/manual-winner", json={"square_number": 20})
    assert response.status_code == 200
    assert response.json()["winner_square"] == 20


def test_complete_specific_round(client):
    _sell(client, [30])
    round_id = client.get("/api/game").json()["game_round"]["id"]

    response = client.post(
        "/api/admin/complete-round",
        json={"game_round_id": round_id, "winner_square": 30}
    )

    assert response.status_code == 200
    assert response.json()["game_round"]["winner_square"] == 30
    assert client.get(f"/api/winner/{round_id}").json()["winner"]["name"] == "Alice"
    missing = client.post(
        "/api/admin/complete-round",
        json={"game_round_id": "missing", "winner_square": 30}
    )
    assert missing.status_code == 404


def test_new_round_and_price(client):
    assert client.post("/api/update-price", json={"price_per_square": 0}).status_code == 400
    assert client.post("/api/update-price", json={"price_per_square": 1500}).status_code == 200

    response = client.post("/api/new-round")
    assert response.status_code == 200
    assert response.json()["game_round"]["round_number"] == 2
    assert response.json()["game_round"]["price_per_square"] == 1500

    priced = client.post("/api/new-round", json={"price_per_square": 2500})
    assert priced.json()["game_round"]["price_per_square"] == 2500
    assert client.get("/api/stats").json()["current_round_number"] == 3
    assert [r["round_number"] for r in client.get("/api/marketing/history").json()["game_rounds"]] == [2, 1]


def test_reset_system(client):
    _sell(client, [1])
    client.post("/api/new-round")

    response = client.post("/api/reset-system")

    assert response.status_code == 200
    assert response.json()["game_round"]["round_number"] == 1
    assert client.get("/api/marketing/participants").json()["participants"] == []
    assert len(client.get("/api/export").json()["rounds"]) == 1


def test_cleanup_reservations(client, db):
    participant_id = _reserve(client, [40, 41]).json()["participant"]["id"]
    _sell(client, [42], name="Bob")

    empty = client.post("/api/cleanup-reservations")
    assert empty.json()["cleaned_squares"] == []

    db.query(Square).filter(Square.number.in_([40, 41])).update(
        {Square.reserved_at: utcnow() - timedelta(minutes=3)},
        synchronize_session=False
    )
    db.commit()

    response = client.post("/api/cleanup-reservations")
    assert response.json()["cleaned_squares"] == [40, 41]
    assert client.get(f"/api/participant/{participant_id}").status_code == 404
    assert client.post("/api/cleanup-reservations").json()["cleaned_squares"] == []
    assert client.get("/api/stats").json()["squares_sold"] == 1


def test_marketing_lookups_and_export(client):
    _sell(client, [3], email="sam@example.com", phone="5559990000")
    client.post("/api/draw-winner")

    by_email = client.get("/api/marketing/participant/email/sam@example.com").json()
    by_phone = client.get("/api/marketing/participant/phone/5559990000").json()
    assert [p["squares"] for p in by_email["participants"]] == [[3]]
    assert [p["squares"] for p in by_phone["participants"]] == [[3]]

    winners = client.get("/api/marketing/winners").json()["winners"]
    assert winners[0]["game_round"]["winner_square"] == 3
    assert winners[0]["winner"]["email"] == "sam@example.com"

    exported = client.get("/api/export").json()["rounds"]
    assert exported[0]["winner"]["name"] == "Alice"


def test_state_version_moves_on_changes(client):
    before = client.get("/api/state").json()["version"]

    _reserve(client, [50])

    assert client.get("/api/state").json()["version"] > before


def test_websocket_receives_connection_and_events(client):
    with client.websocket_connect("/ws") as websocket:
        hello = websocket.receive_json()
        assert hello["type"] == "CONNECTION_ESTABLISHED"

        client.post("/api/selections", json={"squares": [60], "action": "select", "session_id": "A"})

        event = websocket.receive_json()
        assert event["type"] == "SQUARE_SELECTION"
        assert event["data"]["selections"][0]["square"] == 60


def test_new_round_and_reset_clear_selections(client):
    client.post("/api/selections", json={"squares": [5, 6], "action": "select", "session_id": "A"})
    client.post("/api/new-round")
    assert client.get("/api/selections").json()["selections"] == []

    client.post("/api/selections", json={"squares": [7], "action": "select", "session_id": "A"})
    client.post("/api/reset-system")
    assert client.get("/api/selections").json()["selections"] == []


def test_failed_new_round_keeps_selections(client, monkeypatch):
    client.post("/api/selections", json={"squares": [5], "action": "select", "session_id": "A"})

    def broken_start(db, price_cents=None):
        raise StorageError("database unavailable")

    monkeypatch.setattr(RoundManager, "start_round", broken_start)

    assert client.post("/api/new-round").status_code == 500
    selections = client.get("/api/selections").json()["selections"]
    assert [s["square"] for s in selections] == [5]


def test_price_update_publishes_full_stats(client):
    events = []
    get_notifier().subscribe(events.append)

    client.post("/api/update-price", json={"price_per_square": 1500})

    stats_events = [e for e in events if e["type"] == "STATS_UPDATE"]
    assert stats_events[-1]["data"] == client.get("/api/stats").json()
