"""Tests for execution/briefly/org_settings.py"""

import pytest


class TestOrganizationSettings:

    def test_defaults(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings(None)
        assert settings.chat_model == "google/gemini-2.5-flash"
        assert settings.embedding_model == "text-embedding-3-small"
        assert settings.embedding_dimensions == 1536
        assert settings.max_context_chars == 400000

    def test_overrides_applied(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({
            "chat_model": "google/gemini-2.5-pro",
            "match_count": 4,
            "unrelated": "ignored",
        })
        assert settings.chat_model == "google/gemini-2.5-pro"
        assert settings.match_count == 4
        assert "unrelated" not in settings.to_dict()

    def test_unsupported_chat_model_falls_back(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({"chat_model": "someone/else"})
        assert settings.chat_model == "google/gemini-2.5-flash"

    def test_dimensions_follow_embedding_model(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({
            "embedding_model": "text-embedding-3-large",
            "embedding_dimensions": 10,
        })
        assert settings.embedding_dimensions == 3072

    def test_null_values_ignored(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({"match_threshold": None})
        assert settings.match_threshold == 0.5

    def test_numeric_strings_coerced(self):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({"match_count": "7", "match_threshold": "0.3"})
        assert settings.match_count == 7
        assert settings.match_threshold == 0.3

    @pytest.mark.parametrize("key,value", [
        ("match_count", "many"),
        ("match_count", True),
        ("match_count", [3]),
        ("match_count", 0),
        ("match_count", 500),
        ("match_threshold", 1.5),
        ("max_context_chars", -1),
        ("chat_model", 42),
    ])
    def test_bad_values_keep_defaults(self, key, value):
        from execution.briefly.org_settings import OrganizationSettings
        settings = OrganizationSettings.from_settings({key: value})
        assert getattr(settings, key) == getattr(OrganizationSettings(), key)
