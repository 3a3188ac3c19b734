"""Unit tests for vocabulary / settings loading."""

from pathlib import Path

from giatrends import config
from giatrends.vocabulary import Settings, load_settings


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nope.yml")
        assert settings == Settings()
        assert settings.keywords == config.DEFAULT_KEYWORDS

    def test_yaml_overrides(self, tmp_path: Path) -> None:
        (tmp_path / "extra.txt").write_text("# comment\nJorts\n\nbalaclava\n")
        path = tmp_path / "vocabulary.yml"
        path.write_text(
            "keywords:\n  - Denim\n  - silk\n  - denim\n"
            "keywords_file: extra.txt\n"
            "relevance_markers: [y2k]\n"
            "min_cluster_size: 5\n"
        )
        settings = load_settings(path)
        assert settings.keywords == ("denim", "silk", "jorts", "balaclava")
        assert settings.relevance_markers == ("y2k",)
        assert settings.min_cluster_size == 5

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "vocabulary.yml"
        path.write_text("")
        assert load_settings(path) == Settings()

    def test_bundled_vocabulary(self) -> None:
        settings = load_settings(config.PROJECT_ROOT / "config" / "vocabulary.yml")
        assert "runway" in settings.keywords
        assert settings.min_cluster_size == 3
