"""
Unit tests for the launcher's browser decision (main.py).
"""

import main


class TestShouldOpenBrowser:
    def test_should_open_browser_when_disabled_then_false(self, monkeypatch, tmp_path):
        (tmp_path / "index.html").write_text("<html></html>", encoding="utf-8")
        monkeypatch.setattr(main, "OPEN_BROWSER", False)
        monkeypatch.setattr(main, "STATIC_DIR", str(tmp_path))

        assert main._should_open_browser() is False

    def test_should_open_browser_when_enabled_without_index_then_false(
        self, monkeypatch, tmp_path
    ):
        monkeypatch.setattr(main, "OPEN_BROWSER", True)
        monkeypatch.setattr(main, "STATIC_DIR", str(tmp_path))

        assert main._should_open_browser() is False

    def test_should_open_browser_when_enabled_with_index_then_true(self, monkeypatch, tmp_path):
        (tmp_path / "index.html").write_text("<html></html>", encoding="utf-8")
        monkeypatch.setattr(main, "OPEN_BROWSER", True)
        monkeypatch.setattr(main, "STATIC_DIR", str(tmp_path))

        assert main._should_open_browser() is True
