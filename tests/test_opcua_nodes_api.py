from __future__ import annotations

NODE = {
    "plc_no": 3,
    "nodeName": "P3_D200",
    "description": "Pressure",
    "value": "12.5",
    "datatype": "real",
    "regAdd": "D200",
}


def test_node_crud(client):
    r = client.post("/api/opcua-nodes", json=NODE)
    assert r.status_code == 201, r.text
    node = r.json()
    assert node["nodeName"] == "P3_D200"
    assert node["regAdd"] == "D200"
    assert node["timestamp"]
    node_id = node["id"]

    r = client.get(f"/api/opcua-nodes/{node_id}")
    assert r.status_code == 200
    assert r.json()["description"] == "Pressure"

    r = client.put(f"/api/opcua-nodes/{node_id}", json={"value": "13.0", "userDescription": "Line pressure"})
    assert r.status_code == 200, r.text
    assert r.json()["value"] == "13.0"
    assert r.json()["userDescription"] == "Line pressure"
    assert r.json()["nodeName"] == "P3_D200"

    r = client.delete(f"/api/opcua-nodes/{node_id}")
    assert r.status_code == 204
    assert client.get(f"/api/opcua-nodes/{node_id}").status_code == 404


def test_list_filters_by_plc_no(client, uploaded):
    assert client.post("/api/opcua-nodes", json=NODE).status_code == 201

    assert len(client.get("/api/opcua-nodes").json()) == 6
    assert len(client.get("/api/opcua-nodes", params={"plc_no": 1}).json()) == 5
    assert [n["nodeName"] for n in client.get("/api/opcua-nodes", params={"plc_no": 3}).json()] == ["P3_D200"]
    # non-numeric filter is ignored
    assert len(client.get("/api/opcua-nodes", params={"plc_no": "abc"}).json()) == 6


def test_invalid_and_unknown_ids(client):
    assert client.get("/api/opcua-nodes/abc").status_code == 400
    assert client.get("/api/opcua-nodes/999").status_code == 404
    assert client.put("/api/opcua-nodes/999", json={"value": "1"}).status_code == 404
    assert client.delete("/api/opcua-nodes/abc").status_code == 400


def test_create_requires_fields(client):
    r = client.post("/api/opcua-nodes", json={"plc_no": 1, "nodeName": "X"})
    assert r.status_code == 422
