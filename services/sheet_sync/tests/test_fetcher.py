"""Tests for the sheet fetcher."""

import json
from unittest.mock import Mock, patch

import pytest
from google.auth.exceptions import RefreshError

from services._common.client import RequestFailedError
from ..fetcher import (
    FetchStrategy,
    InvalidSheetStructureError,
    SheetAuthError,
    SheetPermissionError,
    SourceError,
    fetch_csv_export,
    fetch_sheet,
    fetch_values_with_api_key,
    fetch_values_with_service_account,
    load_service_account_credentials,
    select_strategy,
)
from ..settings import ConfigurationError
from .conftest import make_settings

VALUES = [["Register No", "Name"], ["S1", "Alice"]]


def mock_credentials(token="sa-token"):
    credentials = Mock()
    credentials.token = token
    credentials.service_account_email = "sync@project.iam.gserviceaccount.com"
    return credentials


class TestSelectStrategy:
    """Tests for credential precedence."""

    def test_service_account_wins(self):
        settings = make_settings(google_service_account_json="{}", google_api_key="key")

        assert select_strategy(settings) is FetchStrategy.SERVICE_ACCOUNT

    def test_service_account_path(self):
        settings = make_settings(google_service_account_json_path="/keys/sa.json", google_api_key="key")

        assert select_strategy(settings) is FetchStrategy.SERVICE_ACCOUNT

    def test_api_key(self):
        assert select_strategy(make_settings(google_api_key="key")) is FetchStrategy.API_KEY

    def test_csv_export_without_credentials(self):
        assert select_strategy(make_settings()) is FetchStrategy.CSV_EXPORT


class TestFetchCsvExport:
    """Tests for the public CSV export."""

    def test_success(self):
        client = Mock()
        client.get_text.return_value = "Register No,Name\nS1,Alice\n"

        text = fetch_csv_export(client, "sheet-123", gid="7")

        assert text.startswith("Register No")
        url = client.get_text.call_args[0][0]
        assert url == "https://docs.google.com/spreadsheets/d/sheet-123/export"
        assert client.get_text.call_args[1]["params"] == {"format": "csv", "gid": "7"}

    def test_empty_body(self):
        client = Mock()
        client.get_text.return_value = "  \n"

        with pytest.raises(InvalidSheetStructureError, match="empty CSV"):
            fetch_csv_export(client, "sheet-123")

    def test_exhausted_retries(self):
        client = Mock()
        client.get_text.side_effect = RequestFailedError("HTTP 500", status_code=500, attempts=3)

        with pytest.raises(SourceError, match="3 attempt"):
            fetch_csv_export(client, "sheet-123")


class TestFetchValuesWithApiKey:
    """Tests for the values API with an API key."""

    def test_success(self):
        client = Mock()
        client.get_json.return_value = {"range": "Sheet1!A1:Z1000", "values": VALUES}

        values = fetch_values_with_api_key(client, "sheet-123", "Sheet1!A1:Z1000", "key")

        assert values == VALUES
        url = client.get_json.call_args[0][0]
        assert url == "https://sheets.googleapis.com/v4/spreadsheets/sheet-123/values/Sheet1%21A1%3AZ1000"
        assert client.get_json.call_args[1]["params"] == {"key": "key"}

    def test_missing_values(self):
        client = Mock()
        client.get_json.return_value = {"range": "Sheet1!A1:Z1000"}

        with pytest.raises(InvalidSheetStructureError):
            fetch_values_with_api_key(client, "sheet-123", "Sheet1!A1:Z1000", "key")

    def test_invalid_json(self):
        client = Mock()
        client.get_json.side_effect = ValueError("Invalid JSON response")

        with pytest.raises(InvalidSheetStructureError):
            fetch_values_with_api_key(client, "sheet-123", "Sheet1!A1:Z1000", "key")

    @pytest.mark.parametrize("status,error", [
        (401, SheetAuthError),
        (403, SheetPermissionError),
    ])
    def test_auth_failures(self, status, error):
        client = Mock()
        client.get_json.side_effect = RequestFailedError(f"HTTP {status}", status_code=status, attempts=3)

        with pytest.raises(error, match=str(status)):
            fetch_values_with_api_key(client, "sheet-123", "Sheet1!A1:Z1000", "key")


class TestServiceAccount:
    """Tests for service account credentials and fetches."""

    def test_inline_json(self):
        with patch("services.sheet_sync.fetcher.service_account.Credentials") as creds_class:
            load_service_account_credentials(inline_json='{"type": "service_account"}')

        info = creds_class.from_service_account_info.call_args[0][0]
        assert info == {"type": "service_account"}
        assert creds_class.from_service_account_info.call_args[1]["scopes"] == [
            "https://www.googleapis.com/auth/spreadsheets.readonly"
        ]

    def test_path_takes_precedence(self, tmp_path):
        key_file = tmp_path / "sa.json"
        key_file.write_text(json.dumps({"type": "service_account"}))

        with patch("services.sheet_sync.fetcher.service_account.Credentials") as creds_class:
            load_service_account_credentials(json_path=str(key_file), inline_json="{}")

        creds_class.from_service_account_file.assert_called_once()
        creds_class.from_service_account_info.assert_not_called()

    def test_malformed_inline_json(self):
        with pytest.raises(ConfigurationError):
            load_service_account_credentials(inline_json="{not json")

    def test_missing_key_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_service_account_credentials(json_path=str(tmp_path / "missing.json"))

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError, match="not provided"):
            load_service_account_credentials()

    @patch("google.auth.transport.requests.Request")
    def test_bearer_token_sent(self, _request):
        client = Mock()
        client.get_json.return_value = {"values": VALUES}
        credentials = mock_credentials()

        values = fetch_values_with_service_account(client, "sheet-123", "Sheet1!A1:Z1000", credentials)

        assert values == VALUES
        credentials.refresh.assert_called_once()
        assert client.get_json.call_args[1]["headers"] == {"Authorization": "Bearer sa-token"}

    @patch("google.auth.transport.requests.Request")
    def test_rejected_token_exchange(self, _request):
        client = Mock()
        credentials = mock_credentials()
        credentials.refresh.side_effect = RefreshError("invalid_grant")

        with pytest.raises(SheetAuthError):
            fetch_values_with_service_account(client, "sheet-123", "Sheet1!A1:Z1000", credentials)

        client.get_json.assert_not_called()

    @patch("google.auth.transport.requests.Request")
    def test_sheet_not_shared(self, _request):
        client = Mock()
        client.get_json.side_effect = RequestFailedError("HTTP 403", status_code=403, attempts=3)

        with pytest.raises(SheetPermissionError, match="Share the spreadsheet"):
            fetch_values_with_service_account(client, "sheet-123", "Sheet1!A1:Z1000", mock_credentials())


class TestFetchSheet:
    """Tests for fetch_sheet dispatch."""

    def test_csv_payload(self):
        client = Mock()
        client.get_text.return_value = "Register No\nS1\n"

        payload = fetch_sheet(make_settings(), client)

        assert payload.strategy is FetchStrategy.CSV_EXPORT
        assert payload.is_csv
        client.close.assert_not_called()

    def test_api_key_payload(self):
        client = Mock()
        client.get_json.return_value = {"values": VALUES}

        payload = fetch_sheet(make_settings(google_api_key="key"), client)

        assert payload.strategy is FetchStrategy.API_KEY
        assert payload.values == VALUES
        assert not payload.is_csv
        client.get_text.assert_not_called()

    def test_no_fallback_after_failure(self):
        client = Mock()
        client.get_json.side_effect = RequestFailedError("HTTP 403", status_code=403, attempts=3)

        with pytest.raises(SheetPermissionError):
            fetch_sheet(make_settings(google_api_key="key"), client)

        client.get_text.assert_not_called()

    @patch("services.sheet_sync.fetcher.build_http_client")
    def test_owned_client_closed(self, build_client):
        client = Mock()
        client.get_text.return_value = "Register No\nS1\n"
        build_client.return_value = client

        fetch_sheet(make_settings())

        client.close.assert_called_once()
