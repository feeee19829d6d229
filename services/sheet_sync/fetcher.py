"""
Fetcher for the Google Sheet source.

Three strategies, chosen once per run by credential precedence:
1. Sheets values API authenticated with a service account
2. Sheets values API authenticated with an API key
3. Public CSV export (no credentials)

The first available credential wins and no other strategy is tried
afterwards. Each HTTP call goes through the shared HTTPClient, which
retries with linear backoff and re-raises the last failure.

This module handles data acquisition only. Parsing is done in parser.py.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import quote

import google.auth.transport.requests
import structlog
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.oauth2 import service_account

from services._common.client import HTTPClient, RequestFailedError
from .settings import SHEETS_READONLY_SCOPE, ConfigurationError, SheetSyncSettings

logger = structlog.get_logger(__name__)

CSV_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export"
VALUES_API_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}"


class SourceError(Exception):
    """Error while fetching the sheet."""
    pass


class SheetAuthError(SourceError):
    """The source rejected our credentials (401)."""
    pass


class SheetPermissionError(SourceError):
    """The credentials are valid but lack access to the sheet (403)."""
    pass


class InvalidSheetStructureError(SourceError):
    """The source answered but returned no usable rows."""
    pass


class FetchStrategy(str, Enum):
    SERVICE_ACCOUNT = "service_account"
    API_KEY = "api_key"
    CSV_EXPORT = "csv_export"


@dataclass
class SheetPayload:
    """
    Raw result of a fetch.

    API strategies return structured value arrays; the CSV export
    returns delimited text that still needs parsing.
    """
    strategy: FetchStrategy
    values: Optional[List[List[Any]]] = None
    csv_text: Optional[str] = None

    @property
    def is_csv(self) -> bool:
        return self.csv_text is not None


def select_strategy(settings: SheetSyncSettings) -> FetchStrategy:
    """Pick the fetch strategy from the configured credentials."""
    if settings.has_service_account():
        return FetchStrategy.SERVICE_ACCOUNT
    if settings.google_api_key:
        return FetchStrategy.API_KEY
    return FetchStrategy.CSV_EXPORT


def _translate_failure(exc: RequestFailedError, source: str) -> SourceError:
    """Map an exhausted request onto the source error taxonomy."""
    if exc.status_code == 401:
        return SheetAuthError(
            f"{source} auth failed (401). Check service account credentials or API key."
        )
    if exc.status_code == 403:
        return SheetPermissionError(
            f"{source} permission denied (403). Share the spreadsheet with the "
            f"service account email, or make it readable with the API key."
        )
    return SourceError(f"{source} request failed after {exc.attempts} attempt(s): {exc}")


def _require_values(payload: Any, source: str) -> List[List[Any]]:
    values = payload.get("values") if isinstance(payload, dict) else None
    if not values:
        raise InvalidSheetStructureError(f"Invalid sheet structure: {source} returned no values")
    return values


def fetch_csv_export(client: HTTPClient, sheet_id: str, gid: str = "0") -> str:
    """
    Download one tab of the sheet through the public CSV export.

    Raises:
        SourceError: If the download fails after retries
        InvalidSheetStructureError: If the body is empty
    """
    url = CSV_EXPORT_URL.format(sheet_id=sheet_id)
    logger.info("Fetching sheet via public CSV export", gid=gid)

    try:
        text = client.get_text(url, params={"format": "csv", "gid": gid})
    except RequestFailedError as e:
        raise _translate_failure(e, "CSV export") from e

    if not text or not text.strip():
        raise InvalidSheetStructureError("Invalid sheet structure: empty CSV")
    return text


def fetch_values_with_api_key(
    client: HTTPClient,
    sheet_id: str,
    cell_range: str,
    api_key: str,
) -> List[List[Any]]:
    """
    Read a range through the Sheets values API with an API key.

    Raises:
        SourceError: If the request fails after retries
        InvalidSheetStructureError: If no values are returned
    """
    url = VALUES_API_URL.format(sheet_id=sheet_id, range=quote(cell_range, safe=""))
    logger.info("Fetching sheet via Sheets API (values endpoint)", range=cell_range)

    try:
        payload = client.get_json(url, params={"key": api_key})
    except RequestFailedError as e:
        raise _translate_failure(e, "Sheets API") from e
    except ValueError as e:
        raise InvalidSheetStructureError(f"Invalid sheet structure: {e}") from e

    return _require_values(payload, "Sheets API")


def load_service_account_credentials(
    json_path: Optional[str] = None,
    inline_json: Optional[str] = None,
) -> service_account.Credentials:
    """
    Build read-only service account credentials.

    A key file path takes precedence over inline JSON.

    Raises:
        ConfigurationError: If neither is set or the credentials are malformed
    """
    scopes = [SHEETS_READONLY_SCOPE]

    try:
        if json_path:
            resolved = Path(json_path).expanduser().resolve()
            return service_account.Credentials.from_service_account_file(
                str(resolved), scopes=scopes
            )
        if inline_json:
            info = json.loads(inline_json)
            return service_account.Credentials.from_service_account_info(info, scopes=scopes)
    except (OSError, ValueError, KeyError) as e:
        raise ConfigurationError(f"Invalid service account credentials: {e}") from e

    raise ConfigurationError(
        "Service Account credentials not provided. Set GOOGLE_SERVICE_ACCOUNT_JSON_PATH "
        "or GOOGLE_SERVICE_ACCOUNT_JSON."
    )


def _access_token(credentials: service_account.Credentials) -> str:
    """Exchange the service account JWT for an access token."""
    try:
        credentials.refresh(google.auth.transport.requests.Request())
    except RefreshError as e:
        raise SheetAuthError(
            f"Sheets API auth failed (401). Check service account credentials: {e}"
        ) from e
    except GoogleAuthError as e:
        raise SourceError(f"Service account token request failed: {e}") from e
    return credentials.token


def fetch_values_with_service_account(
    client: HTTPClient,
    sheet_id: str,
    cell_range: str,
    credentials: service_account.Credentials,
) -> List[List[Any]]:
    """
    Read a range through the Sheets values API as a service account.

    Raises:
        SheetAuthError: On 401 or a rejected token exchange
        SheetPermissionError: On 403 (sheet not shared with the account)
        InvalidSheetStructureError: If no values are returned
    """
    token = _access_token(credentials)
    url = VALUES_API_URL.format(sheet_id=sheet_id, range=quote(cell_range, safe=""))
    logger.info(
        "Fetching sheet via Sheets API with Service Account",
        range=cell_range,
        service_account=getattr(credentials, "service_account_email", None),
    )

    try:
        payload = client.get_json(url, headers={"Authorization": f"Bearer {token}"})
    except RequestFailedError as e:
        raise _translate_failure(e, "Sheets API") from e
    except ValueError as e:
        raise InvalidSheetStructureError(f"Invalid sheet structure: {e}") from e

    return _require_values(payload, "Sheets API")


def build_http_client(settings: SheetSyncSettings) -> HTTPClient:
    """HTTP client configured for source requests."""
    return HTTPClient(
        max_attempts=settings.http_max_attempts,
        base_delay=settings.http_backoff_seconds,
        timeout=settings.http_timeout,
        follow_redirects=True,  # the CSV export redirects to googleusercontent
    )


def fetch_sheet(
    settings: SheetSyncSettings,
    client: Optional[HTTPClient] = None,
) -> SheetPayload:
    """
    Fetch the sheet using the strategy selected from the credentials.

    Args:
        settings: Service settings
        client: HTTP client (creates one from settings if None)

    Returns:
        SheetPayload with either value arrays or CSV text

    Raises:
        SourceError: On any fetch failure, after retries
        ConfigurationError: If service account credentials are malformed
    """
    strategy = select_strategy(settings)

    close_client = False
    if client is None:
        client = build_http_client(settings)
        close_client = True

    try:
        if strategy is FetchStrategy.SERVICE_ACCOUNT:
            credentials = load_service_account_credentials(
                settings.google_service_account_json_path,
                settings.google_service_account_json,
            )
            values = fetch_values_with_service_account(
                client, settings.google_sheet_id, settings.google_sheet_range, credentials
            )
            return SheetPayload(strategy=strategy, values=values)

        if strategy is FetchStrategy.API_KEY:
            values = fetch_values_with_api_key(
                client,
                settings.google_sheet_id,
                settings.google_sheet_range,
                settings.google_api_key,
            )
            return SheetPayload(strategy=strategy, values=values)

        text = fetch_csv_export(client, settings.google_sheet_id, settings.google_sheet_gid)
        return SheetPayload(strategy=strategy, csv_text=text)
    finally:
        if close_client:
            client.close()
