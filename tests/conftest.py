from __future__ import annotations

import pytest

from qualitysentinel.analyzers import metrics as metrics_mod


@pytest.fixture(autouse=True)
def _line_scanner_metrics(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep metrics deterministic whether or not the tree-sitter extra is installed.
    monkeypatch.setattr(metrics_mod, "ts_parse", lambda _language, _source: None)
    metrics_mod.function_metrics_for.cache_clear()
