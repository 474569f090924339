"""Test entity kind inference from header rows"""
from models.records import EntityKind
from services.sheet_inference import KEYWORD_PRIORITY, infer_kind, route_kind


def test_each_kind_is_recognised():
    assert infer_kind(["Name", "Position", "Skills"]) == EntityKind.CANDIDATES
    assert infer_kind(["Name", "Company", "Industry"]) == EntityKind.CLIENTS
    assert infer_kind(["Name", "Territory", "Trend"]) == EntityKind.RECRUITERS
    assert infer_kind(["Month", "Recruiters", "Hired", "Target"]) == EntityKind.PERFORMANCE


def test_client_keyword_beats_performance_keyword():
    assert infer_kind(["Industry", "Target"]) == EntityKind.CLIENTS


def test_candidate_keyword_beats_everything_else():
    assert infer_kind(["Department", "Industry", "Month", "Salary"]) == EntityKind.CANDIDATES


def test_headers_are_normalised():
    assert infer_kind(["  AVG   DaysToFill  "]) == EntityKind.CLIENTS
    assert infer_kind(["Join  Date"]) == EntityKind.RECRUITERS


def test_generic_headers_are_unknown():
    assert infer_kind(["Name", "Email", "Hired", "Status"]) is None
    assert infer_kind([]) is None
    assert infer_kind(["", "  "]) is None


def test_clients_tab_with_client_column_is_not_a_candidate_tab():
    headers = ["Client", "Company", "Email", "Industry", "Total Hired"]
    assert infer_kind(headers) == EntityKind.CLIENTS


def test_keyword_sets_are_disjoint():
    seen = set()
    for _, keywords in KEYWORD_PRIORITY:
        assert not (seen & keywords)
        seen |= keywords
    assert "hired" not in seen


def test_route_kind():
    clients_headers = ["Company", "Industry"]

    assert route_kind(clients_headers, EntityKind.RECRUITERS) == EntityKind.CLIENTS
    assert route_kind(clients_headers, EntityKind.RECRUITERS, enabled=False) == EntityKind.RECRUITERS
    assert route_kind(["Name"], EntityKind.PERFORMANCE) == EntityKind.PERFORMANCE
