from __future__ import annotations

import os

import pytest

_ENV_PREFIXES = ("SENTINEL_", "MOCK_SENTINEL_")


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """
    Strip dashboard/mock env vars and run from a scratch dir, so default `var/` paths
    (audit log, client state) never land in the checkout.
    """
    for k in [k for k in os.environ if k.startswith(_ENV_PREFIXES)]:
        monkeypatch.delenv(k, raising=False)
    monkeypatch.chdir(tmp_path)
