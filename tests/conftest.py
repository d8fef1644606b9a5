from __future__ import annotations

import copy
import json
from pathlib import Path
import sys

# Ensure repo root is importable
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


import pytest
from fastapi.testclient import TestClient

from opcua_dashboard.api.app import create_app
from opcua_dashboard.core.settings import Settings


SAMPLE_DOC = {
    "plcs": [
        {
            "plc_name": "FZ604 Line 1",
            "plc_no": 1,
            "plc_ip": "192.168.0.10",
            "opcua_url": "opc.tcp://192.168.0.10:4840",
            "address_mappings": [
                {
                    "plc_reg_add": "2100.02",
                    "data_type": "bool",
                    "opcua_reg_add": "P1_IO_2100_B02",
                    "description": "Conveyor running",
                },
                {
                    "plc_reg_add": "1",
                    "data_type": "channel",
                    "opcua_reg_add": "P1_IO_1_BC",
                    "description": "Door sensors",
                    "metadata": {
                        "bit_count": 3,
                        "bit_mappings": {
                            "bit_02": {"address": "1.02", "description": "Rear door", "bit_position": 2},
                            "bit_00": {"address": "1.00", "description": "Front door", "bit_position": 0},
                            "bit_01": {"address": "1.01", "description": "Side door", "bit_position": 1},
                        },
                    },
                },
                {
                    "plc_reg_add": "D100",
                    "data_type": "word",
                    "opcua_reg_add": "P1_D100",
                    "description": "Oven temperature",
                },
            ],
        }
    ]
}


@pytest.fixture()
def sample_doc() -> dict:
    return copy.deepcopy(SAMPLE_DOC)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        env="test",
        database_url=f"sqlite:///{db_path}",
        auto_create_db=True,
        enable_live_simulation=False,
        bit_fallback_enabled=True,
        bit_fallback_suffixes=["_BC"],
        bit_fallback_count=8,
    )


@pytest.fixture()
def client(settings: Settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


def _upload(client: TestClient, doc):
    body = doc if isinstance(doc, bytes) else json.dumps(doc).encode("utf-8")
    return client.post(
        "/api/upload/json",
        files={"jsonFile": ("plcs.json", body, "application/json")},
    )


@pytest.fixture()
def uploaded(client: TestClient, sample_doc: dict) -> dict:
    r = _upload(client, sample_doc)
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture()
def upload(client: TestClient):
    return lambda doc: _upload(client, doc)
