from __future__ import annotations

import datetime as dt
import random

from opcua_dashboard.services.node_value_simulator import NodeValueSimulator


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["db"]["ok"] is True
    assert body["live"]["clients"] == 0


def test_simulator_tick_advances_values(client, uploaded):
    sim = NodeValueSimulator(
        client.app.state.db_sessionmaker,
        flip_probability=1.0,
        step=1.0,
        rng=random.Random(7),
    )
    now = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)

    first = {n["node_name"]: n for n in sim.tick(now=now)}
    assert len(first) == 5
    assert first["P1_IO_2100_B02"]["current_value"] is True
    assert first["P1_IO_1_BC_00"]["current_value"] is True
    assert -1.0 <= first["P1_D100"]["current_value"] <= 1.0
    assert first["P1_D100"]["timestamp"] == now.isoformat()

    second = {n["node_name"]: n for n in sim.tick(now=now)}
    assert second["P1_IO_2100_B02"]["current_value"] is False


def test_simulator_forgets_deleted_nodes(client, uploaded):
    sim = NodeValueSimulator(client.app.state.db_sessionmaker, rng=random.Random(1))
    assert len(sim.tick()) == 5
    client.delete("/api/plcs/by-number/1")
    assert sim.tick() == []


def test_servers_status_and_groups(client, uploaded):
    plc_id = uploaded["plcs"][0]["id"]

    (status,) = client.get("/api/servers/status").json()
    assert status["opcua_url"] == "opc.tcp://192.168.0.10:4840"
    assert status["is_connected"] is False
    assert status["status"] == "inactive"
    assert status["node_count"] == 6

    client.post(f"/api/plcs/{plc_id}/connect")
    (group,) = client.get("/api/servers/groups").json()
    assert group["serverUrl"] == "opc.tcp://192.168.0.10:4840"
    assert group["status"] == "connected"
    assert group["connectedCount"] == 1
    assert group["totalCount"] == 1
    assert group["plcs"][0]["registerCount"] == 6


def test_export_csv(client, uploaded):
    r = client.get("/api/export/csv")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="node_data_' in r.headers["content-disposition"]
    lines = r.text.strip().split("\n")
    assert lines[0] == "Node Name,Node ID,Current Value,Data Type,Quality,Timestamp"
    assert len(lines) == 6
    assert lines[1].startswith("P1_IO_2100_B02,ns=2;s=P1_IO_2100_B02,False,bool,Good,")


def test_export_csv_for_unknown_plc(client):
    assert client.get("/api/export/csv", params={"plcId": 999}).status_code == 404


def test_websocket_snapshot_and_subscriptions(client, uploaded):
    with client.websocket_connect("/ws/node-data") as ws:
        first = ws.receive_json()
        assert first["type"] == "plcs"
        assert [p["plc_name"] for p in first["plcs"]] == ["FZ604 Line 1"]

        snapshot = ws.receive_json()
        assert snapshot["type"] == "nodeData"
        assert len(snapshot["nodes"]) == 5

        ws.send_json({"type": "subscribePLC", "plcNo": 1})
        assert ws.receive_json() == {"type": "subscribed", "plcNo": 1}

        broadcaster = client.app.state.node_broadcaster
        assert broadcaster.connection_count == 1
        broadcaster.broadcast_nodes(
            [
                {"node_id": "ns=2;s=A", "plc_no": 2, "current_value": 1},
                {"node_id": "ns=2;s=B", "plc_no": 1, "current_value": 2},
            ]
        )
        update = ws.receive_json()
        assert update["type"] == "nodeDataUpdate"
        assert [n["node_id"] for n in update["nodes"]] == ["ns=2;s=B"]

        ws.send_json({"type": "unsubscribePLC", "plcNo": 1})
        assert ws.receive_json() == {"type": "unsubscribed", "plcNo": 1}

        ws.send_json({"type": "subscribePLC"})
        assert ws.receive_json()["type"] == "error"

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "detail": "invalid JSON"}
