"""Test the HTTP surface end to end with an in-process client"""
import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from core.dependencies import ServiceContainer, set_container
from core.exceptions import SheetFetchError
from main import app
from models.records import EntityKind
from services.sheets_fetchers import FetchOutcome, FetchResult, TabPayload
from services.updates_service import UpdatesBroadcaster


SHEET_VALUES = {
    EntityKind.RECRUITERS: [["Name", "Email", "Hired", "Status"], ["Jane", "jane@x.com", "7", "active"]],
    EntityKind.CANDIDATES: [["Name", "Skills"], ["Sam", "Go, Rust"]],
    EntityKind.CLIENTS: [["Name", "Company", "Industry"], ["Acme", "Acme Ltd", "Retail"]],
    EntityKind.PERFORMANCE: [["Month", "Hired"], ["2024-01", "9"]],
}


class StaticChain:
    def __init__(self):
        self.down = False
        self.requested = []

    async def fetch_tab(self, config, tab):
        self.requested.append(config.spreadsheet_id)
        if self.down:
            raise SheetFetchError("Failed to fetch sheet: 503")
        return FetchResult(FetchOutcome.OK, "api_key", TabPayload(values=SHEET_VALUES[tab.kind]))


@pytest.fixture
def chain():
    return StaticChain()


@pytest.fixture
def client(tmp_path, chain):
    settings = Settings(database_url=str(tmp_path / "api.db"))
    set_container(ServiceContainer(settings=settings, fetcher=chain, broadcaster=UpdatesBroadcaster()))
    with TestClient(app) as test_client:
        yield test_client
    set_container(None)


def test_ping(client):
    response = client.get("/api/ping")

    assert response.status_code == 200
    assert response.json() == {"message": "ping"}


def test_import_from_sheet_link(client, chain):
    response = client.post(
        "/api/import-sheets",
        json={"sheetLink": "https://docs.google.com/spreadsheets/d/abc-123_X/edit#gid=0", "apiKey": "k"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["spreadsheetId"] == "abc-123_X"
    assert body["persisted"] is True
    assert body["recruiters"][0]["hiredCount"] == 7
    assert body["candidates"][0]["skills"] == ["Go", "Rust"]
    assert set(chain.requested) == {"abc-123_X"}


def test_import_without_source_is_rejected(client, chain):
    response = client.post("/api/import-sheets", json={"sheetLink": "https://example.com/not-a-sheet"})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing spreadsheetId or sheetLink"
    assert response.json()["error_code"] == "VALIDATION_ERROR"
    assert chain.requested == []


def test_import_with_every_tab_down_is_a_bad_gateway(client, chain):
    chain.down = True

    response = client.post("/api/import-sheets", json={"spreadsheetId": "s1"})

    assert response.status_code == 502
    assert response.json()["error_code"] == "IMPORT_FAILED"


def test_data_returns_stored_records(client):
    assert client.get("/api/data").json()["recruiters"] == []

    client.post("/api/import-sheets", json={"spreadsheetId": "s1"})
    body = client.get("/api/data").json()

    assert [r["name"] for r in body["recruiters"]] == ["Jane"]
    assert [c["company"] for c in body["clients"]] == ["Acme Ltd"]
    assert body["performance"][0]["hiredCount"] == 9
    assert "no-store" in client.get("/api/data").headers["cache-control"]


def test_save_and_list_configs(client):
    saved = client.post("/api/save-sheets-config", json={"spreadsheetId": "s1", "apiKey": "k"})
    client.post("/api/save-sheets-config", json={"spreadsheetId": "s1", "apiKey": "k2"})
    configs = client.get("/api/sheets-configs").json()

    assert saved.status_code == 200
    assert saved.json()["createdAt"]
    assert saved.json()["autoRefresh"] is False
    assert len(configs) == 1
    assert configs[0]["apiKey"] == "k2"
    assert configs[0]["ranges"]["recruiters"] == "Recruiters!A:J"


def test_malformed_config_body_is_a_400(client):
    response = client.post("/api/save-sheets-config", json={"apiKey": "k"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_auto_refresh_config_shows_in_scheduler_status(client):
    client.post(
        "/api/save-sheets-config",
        json={"spreadsheetId": "s1", "autoRefresh": True, "refreshIntervalMinutes": 30},
    )

    jobs = client.get("/api/scheduler/status").json()

    assert [job["spreadsheetId"] for job in jobs] == ["s1"]
    assert jobs[0]["intervalSeconds"] == 1800


def test_clear_data(client):
    client.post("/api/import-sheets", json={"spreadsheetId": "s1"})
    client.post("/api/save-sheets-config", json={"spreadsheetId": "s1"})

    response = client.post("/api/clear-data")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Cleared all recruitment data and sheet configs"
    assert body["deleted"]["recruiters"] == 1
    assert body["deleted"]["sheetsConfigs"] == 1
    assert client.get("/api/data").json()["candidates"] == []
    assert client.get("/api/scheduler/status").json() == []


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["store"]["status"] == "healthy"
    assert body["scheduler"] == {"jobs": 0}
