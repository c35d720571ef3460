from __future__ import annotations

from typing import Any, Iterator

import pytest

from scripts.directory_ingestion.base_provider import BaseProvider
from scripts.directory_ingestion.config import LogAnalyticsConfig


def graph_user(n: int, **overrides: Any) -> dict:
    user = {
        "id": f"00000000-0000-0000-0000-{n:012d}",
        "userPrincipalName": f"user{n}@contoso.com",
        "displayName": f"User {n}",
        "city": "Leeds",
        "country": "United Kingdom",
        "department": "Finance",
        "jobTitle": "Analyst",
        "mail": f"user{n}@contoso.com",
        "officeLocation": "HQ 2.01",
        "assignedLicenses": [
            {"disabledPlans": [], "skuId": "05e9a617-0261-4cee-bb44-138d3ef5d965"},
        ],
        "assignedPlans": [
            {
                "assignedDateTime": "2024-03-01T09:00:00Z",
                "capabilityStatus": "Enabled",
                "service": "exchange",
                "servicePlanId": "efb87545-963c-4e0d-99df-69c6916d9eb0",
            },
        ],
        "createdDateTime": "2023-11-14T08:12:00Z",
        "signInActivity": {"lastSignInDateTime": "2026-10-01T07:45:00Z"},
    }
    user.update(overrides)
    return user


class PagedProvider(BaseProvider):
    """Serves canned Graph pages without any network access."""

    PROVIDER_NAME = "fixture"

    def __init__(self, pages: list[list[Any]], mapping_error_policy: str = "skip") -> None:
        super().__init__(mapping_error_policy)
        self.pages = pages
        self.authenticated = 0
        self.passes = 0

    def authenticate(self) -> None:
        self.authenticated += 1

    def iter_raw_users(self) -> Iterator[Any]:
        self.passes += 1
        self.expected_total = sum(len(p) for p in self.pages)
        for page in self.pages:
            yield from page


@pytest.fixture
def credential() -> LogAnalyticsConfig:
    return LogAnalyticsConfig(
        workspace_id="11111111-2222-3333-4444-555555555555",
        shared_key="c2VjcmV0LWtleS1ieXRlcw==",
        table_name="AzureADUsers",
    )
