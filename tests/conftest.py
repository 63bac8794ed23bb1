"""
Shared pytest fixtures.

Key fixture: `isolated_dir` — changes the working directory to a fresh
temporary directory for every test that requests it. Log files and the
repo-local .azchat/ config are relative to CWD, so nothing bleeds between
tests or touches the real checkout.
"""

from typing import Optional

import pytest

from azchat.models import CompletionParams, Transcript
from azchat.providers.base import BaseGateway, CompletionResult


class FakeGateway(BaseGateway):
    """Returns queued results (or raises queued exceptions) in order."""

    name = "fake"

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[list[dict[str, str]]] = []
        self.params: Optional[CompletionParams] = None

    def complete(self, transcript: Transcript, params: CompletionParams) -> CompletionResult:
        self.calls.append(transcript.as_messages())
        self.params = params
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def isolated_dir(tmp_path, monkeypatch):
    """
    Change CWD to a fresh temp directory.
    """
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove Azure settings from the environment."""
    for var in (
        "ENDPOINT_URL",
        "DEPLOYMENT_NAME",
        "AZURE_OPENAI_API_KEY",
        "AZURE_OPENAI_API_VERSION",
    ):
        monkeypatch.delenv(var, raising=False)
