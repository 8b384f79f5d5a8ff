"""
Pytest configuration and shared fixtures for testing the contributions dashboard.
"""

import datetime
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dashboard import ContributionDay

# A Wednesday
TODAY = datetime.date(2024, 6, 12)


def build_payload(counts, end, login="octocat"):
    """GraphQL response with one day per count, ending on `end`, in Sunday-first weeks."""
    start = end - datetime.timedelta(days=len(counts) - 1)
    weeks = []
    for offset, count in enumerate(counts):
        day = start + datetime.timedelta(days=offset)
        if not weeks or day.weekday() == 6:
            weeks.append({"contributionDays": []})
        weeks[-1]["contributionDays"].append(
            {"date": day.isoformat(), "contributionCount": count}
        )
    return {
        "data": {
            "viewer": {
                "login": login,
                "contributionsCollection": {
                    "contributionCalendar": {
                        "totalContributions": sum(counts),
                        "weeks": weeks,
                    }
                },
            }
        }
    }


def build_days(counts, end=TODAY):
    """ContributionDay list, oldest first, ending on `end`."""
    start = end - datetime.timedelta(days=len(counts) - 1)
    return [
        ContributionDay(date=start + datetime.timedelta(days=i), contribution_count=c)
        for i, c in enumerate(counts)
    ]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's own overrides out of the tests."""
    for name in (
        "GH_DASHBOARD_GH",
        "GH_DASHBOARD_TIMEOUT",
        "GH_DASHBOARD_MAX_WIDTH",
        "GH_DASHBOARD_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def year_payload():
    """A year of activity ending on TODAY with a repeating 0..6 pattern."""
    counts = [i % 7 for i in range(365)]
    return build_payload(counts, TODAY)


@pytest.fixture
def make_payload():
    return build_payload


@pytest.fixture
def make_days():
    return build_days
