from datetime import date
from decimal import Decimal

import pytest
import requests

from config import Settings
from errors import LayoutServiceError
from layout_adapter import (
    AzureLayoutClient,
    LayoutAdapter,
    LayoutCell,
    LayoutResult,
    LayoutTable,
    merge_candidates,
)
from schema import CandidateTransaction


def _table(rows):
    cells = tuple(
        LayoutCell(row_index=r, column_index=c, content=value)
        for r, row in enumerate(rows)
        for c, value in enumerate(row)
    )
    return LayoutTable(row_count=len(rows), column_count=max(len(row) for row in rows), cells=cells)


class FakeAnalyzer:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def analyze(self, data):
        self.calls += 1
        return self.result


class FakeResponse:
    def __init__(self, status_code, body=None, headers=None, text=""):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, post_response=None, get_responses=(), post_error=None):
        self.post_response = post_response
        self.get_responses = list(get_responses)
        self.post_error = post_error
        self.posted = []

    def post(self, url, **kwargs):
        self.posted.append((url, kwargs))
        if self.post_error is not None:
            raise self.post_error
        return self.post_response

    def get(self, url, **kwargs):
        return self.get_responses.pop(0)


ANALYZE_RESULT = {
    "tables": [{
        "rowCount": 2,
        "columnCount": 3,
        "cells": [
            {"rowIndex": 0, "columnIndex": 0, "content": "Date"},
            {"rowIndex": 0, "columnIndex": 1, "content": "Description"},
            {"rowIndex": 0, "columnIndex": 2, "content": "Amount"},
            {"rowIndex": 1, "columnIndex": 0, "content": "04/03/2024"},
            {"rowIndex": 1, "columnIndex": 1, "content": "SAFEWAY STORE 123"},
            {"rowIndex": 1, "columnIndex": 2, "content": "45.10"},
        ],
    }],
    "paragraphs": [{"content": "Statement Period 04/01/2024 - 04/30/2024"}],
}


def test_layout_result_from_analyze_result():
    result = LayoutResult.from_analyze_result(ANALYZE_RESULT)

    assert result.paragraphs == ("Statement Period 04/01/2024 - 04/30/2024",)
    assert result.tables[0].rows() == [
        ["Date", "Description", "Amount"],
        ["04/03/2024", "SAFEWAY STORE 123", "45.10"],
    ]


def test_layout_result_falls_back_to_page_lines():
    payload = {"pages": [{"lines": [{"content": "04/05/2024 CHEVRON 0123 40.00"}, {"content": " "}]}]}
    assert LayoutResult.from_analyze_result(payload).paragraphs == ("04/05/2024 CHEVRON 0123 40.00",)


def test_table_and_paragraph_duplicates_collapse():
    result = LayoutResult(
        tables=(_table([["04/03/2024", "SAFEWAY STORE 123", "45.10"]]),),
        paragraphs=("Statement Period 04/01/2024 - 04/30/2024", "04/03/2024", "SAFEWAY STORE 123", "45.10"),
    )
    analyzer = FakeAnalyzer(result)
    candidates = LayoutAdapter(analyzer).extract(b"%PDF")

    assert analyzer.calls == 1
    assert len(candidates) == 1
    assert candidates[0].source_tag == "layout:table"
    assert candidates[0].amount == Decimal("45.10")


def test_partial_dates_use_period_from_paragraphs():
    result = LayoutResult(
        tables=(_table([["12/30", "Deposit Dividend", "5.00"]]),),
        paragraphs=("for December 1, 2023 to January 15, 2024",),
    )
    candidates = LayoutAdapter(FakeAnalyzer(result)).extract(b"%PDF")
    assert candidates[0].date == date(2023, 12, 30)


def test_paragraph_lines_and_triples():
    result = LayoutResult(paragraphs=(
        "04/05/2024 CHEVRON 0123 40.00",
        "04/06/2024",
        "TRADER JOE'S #123",
        "$62.18",
        "Page 1 of 3",
    ))
    candidates = LayoutAdapter(FakeAnalyzer(result)).extract(b"%PDF", source_tag="stmt.pdf:layout")

    assert sorted((c.description, c.amount) for c in candidates) == [
        ("CHEVRON 0123", Decimal("40.00")),
        ("TRADER JOE'S #123", Decimal("62.18")),
    ]
    assert all(c.source_tag == "stmt.pdf:layout:paragraph" for c in candidates)


def test_single_column_tables_are_ignored():
    result = LayoutResult(tables=(_table([["04/03/2024 SAFEWAY 45.10"]]),))
    assert LayoutAdapter(FakeAnalyzer(result)).extract(b"%PDF") == []


def test_duplicates_within_one_strategy_are_kept():
    row = ["04/03/2024", "SAFEWAY STORE 123", "45.10"]
    result = LayoutResult(tables=(_table([row, row]),))
    assert len(LayoutAdapter(FakeAnalyzer(result)).extract(b"%PDF")) == 2


def test_merge_candidates_tolerance():
    def candidate(description, amount):
        return CandidateTransaction(date=date(2024, 4, 3), description=description, amount=Decimal(amount))

    primary = [candidate("SAFEWAY STORE 123 GROCERY", "45.10")]
    secondary = [
        candidate("safeway store 123 grocery purchase", "-45.105"),
        candidate("CHEVRON 0123", "45.10"),
    ]
    merged = merge_candidates(primary, secondary)
    assert [c.description for c in merged] == ["SAFEWAY STORE 123 GROCERY", "CHEVRON 0123"]


def test_client_from_settings():
    assert AzureLayoutClient.from_settings(Settings()) is None
    client = AzureLayoutClient.from_settings(Settings(layout_endpoint="https://x.example", layout_key="k"))
    assert client.endpoint == "https://x.example"


def test_client_rejects_oversized_documents():
    session = FakeSession()
    client = AzureLayoutClient("https://x.example", "k", max_document_bytes=10, session=session)
    with pytest.raises(LayoutServiceError, match="limit"):
        client.analyze(b"x" * 11)
    assert session.posted == []


def test_client_wraps_http_errors():
    client = AzureLayoutClient("https://x.example", "k", session=FakeSession(FakeResponse(401, text="denied")))
    with pytest.raises(LayoutServiceError, match="HTTP 401"):
        client.analyze(b"%PDF")


def test_client_wraps_connection_errors():
    session = FakeSession(post_error=requests.exceptions.ConnectionError("refused"))
    with pytest.raises(LayoutServiceError, match="request failed"):
        AzureLayoutClient("https://x.example", "k", session=session).analyze(b"%PDF")


def test_client_polls_until_succeeded():
    session = FakeSession(
        post_response=FakeResponse(202, headers={"Operation-Location": "https://x.example/op/1"}),
        get_responses=[
            FakeResponse(200, {"status": "running"}),
            FakeResponse(200, {"status": "succeeded", "analyzeResult": ANALYZE_RESULT}),
        ],
    )
    client = AzureLayoutClient("https://x.example/", "k", poll_interval=0, session=session)
    result = client.analyze(b"%PDF")

    url, kwargs = session.posted[0]
    assert url == "https://x.example/formrecognizer/documentModels/prebuilt-layout:analyze"
    assert kwargs["headers"]["Ocp-Apim-Subscription-Key"] == "k"
    assert len(result.tables) == 1


def test_client_reports_failed_analysis():
    session = FakeSession(
        post_response=FakeResponse(202, headers={"Operation-Location": "https://x.example/op/1"}),
        get_responses=[FakeResponse(200, {"status": "failed", "error": {"message": "corrupt file"}})],
    )
    with pytest.raises(LayoutServiceError, match="corrupt file"):
        AzureLayoutClient("https://x.example", "k", poll_interval=0, session=session).analyze(b"%PDF")


def test_client_requires_operation_location():
    session = FakeSession(post_response=FakeResponse(202))
    with pytest.raises(LayoutServiceError, match="Operation-Location"):
        AzureLayoutClient("https://x.example", "k", session=session).analyze(b"%PDF")


@pytest.mark.parametrize("analyze_result", [
    {"paragraphs": ["04/03/2024 SAFEWAY STORE 123 45.10"]},
    {"tables": [{"rowCount": 1, "columnCount": 3, "cells": [{"rowIndex": None, "columnIndex": 0}]}]},
])
def test_client_wraps_malformed_results(analyze_result):
    session = FakeSession(
        post_response=FakeResponse(202, headers={"Operation-Location": "https://x.example/op/1"}),
        get_responses=[FakeResponse(200, {"status": "succeeded", "analyzeResult": analyze_result})],
    )
    with pytest.raises(LayoutServiceError, match="unexpected result"):
        AzureLayoutClient("https://x.example", "k", poll_interval=0, session=session).analyze(b"%PDF")
