"""
Tests for lexicon loading, normalization and matcher caching.
"""

import json

import pytest

from feedguard.core.lexicon import LexiconStore, MatcherSet, lexicon_signature, normalize_lexicon
from feedguard.models import Category


class TestNormalizeLexicon:
    """Malformed lexicon input degrades instead of failing."""

    def test_non_mapping_becomes_empty(self):
        assert normalize_lexicon(["kill"]) == {}
        assert normalize_lexicon(None) == {}
        assert normalize_lexicon("kill") == {}

    def test_unknown_and_other_categories_dropped(self):
        lexicon = normalize_lexicon({"nonsense": ["a"], "other": ["b"], "extreme_shock": ["gore"]})
        assert lexicon == {Category.EXTREME_SHOCK: ["gore"]}

    def test_keys_normalized(self):
        lexicon = normalize_lexicon({"Scam-Solicitation": ["dm me"], "extreme shock": ["gore"]})
        assert set(lexicon) == {Category.SCAM_SOLICITATION, Category.EXTREME_SHOCK}

    def test_values_trimmed_and_filtered(self):
        lexicon = normalize_lexicon({"aggression_violence": ["  kill ", "", "   ", 42, None, "kill", "stab"]})
        assert lexicon[Category.AGGRESSION_VIOLENCE] == ["kill", "stab"]

    def test_non_list_value_becomes_empty_sequence(self):
        lexicon = normalize_lexicon({"aggression_violence": "kill"})
        assert lexicon == {Category.AGGRESSION_VIOLENCE: []}

    def test_wrapped_categories_accepted(self):
        lexicon = normalize_lexicon({"categories": {"misinfo_speculation": ["hoax"]}})
        assert lexicon == {Category.MISINFO_SPECULATION: ["hoax"]}

    def test_canonical_category_order(self):
        lexicon = normalize_lexicon({
            "polarization_bubble": ["x"],
            "aggression_violence": ["y"],
            "scam_solicitation": ["z"],
        })
        assert list(lexicon) == [
            Category.AGGRESSION_VIOLENCE,
            Category.SCAM_SOLICITATION,
            Category.POLARIZATION_BUBBLE,
        ]


class TestSignature:

    def test_equal_content_equal_signature(self):
        a = normalize_lexicon({"aggression_violence": ["kill"]})
        b = normalize_lexicon({"aggression_violence": [" kill "]})
        assert lexicon_signature(a) == lexicon_signature(b)

    def test_changed_content_changes_signature(self):
        a = normalize_lexicon({"aggression_violence": ["kill"]})
        b = normalize_lexicon({"aggression_violence": ["kilt"]})
        assert lexicon_signature(a) != lexicon_signature(b)


class TestMatcherSet:

    def test_longest_keyword_first(self):
        matchers = MatcherSet.build({Category.AGGRESSION_VIOLENCE: ["bad", "really bad"]})
        (_, pattern), = matchers.matchers
        assert pattern.search("this is really bad").group(0) == "really bad"

    def test_case_insensitive(self):
        matchers = MatcherSet.build({Category.AGGRESSION_VIOLENCE: ["kill"]})
        (_, pattern), = matchers.matchers
        assert pattern.search("I will KILL it")

    def test_regex_metacharacters_escaped(self):
        matchers = MatcherSet.build({Category.SCAM_SOLICITATION: ["$$$ (free)"]})
        (_, pattern), = matchers.matchers
        assert pattern.search("get $$$ (free) now")
        assert not pattern.search("get free now")

    def test_empty_categories_skipped(self):
        matchers = MatcherSet.build({Category.AGGRESSION_VIOLENCE: []})
        assert matchers.matchers == ()


class TestLexiconStore:

    async def test_load_success(self, write_lexicon):
        store = LexiconStore(write_lexicon({"aggression_violence": ["kill"]}))
        outcome = await store.load()

        assert outcome.ok
        assert store.ready
        assert store.lexicon == {Category.AGGRESSION_VIOLENCE: ["kill"]}

    async def test_missing_file_degrades_to_empty(self, tmp_path):
        store = LexiconStore(str(tmp_path / "missing.json"))
        outcome = await store.load()

        assert not outcome.ok
        assert outcome.error
        assert store.loaded
        assert not store.ready
        assert store.lexicon == {}
        assert store.matchers().matchers == ()

    async def test_invalid_json_degrades_to_empty(self, write_lexicon):
        store = LexiconStore(write_lexicon("{not json"))
        outcome = await store.load()

        assert not outcome.ok
        assert store.lexicon == {}

    async def test_load_is_memoized(self, write_lexicon):
        path = write_lexicon({"aggression_violence": ["kill"]})
        store = LexiconStore(path)
        first = await store.load()

        with open(path, "w", encoding="utf-8") as f:
            json.dump({"aggression_violence": ["stab"]}, f)
        second = await store.load()

        assert second is first
        assert store.lexicon[Category.AGGRESSION_VIOLENCE] == ["kill"]

    async def test_failure_is_memoized_until_reload(self, tmp_path):
        path = tmp_path / "later.json"
        store = LexiconStore(str(path))
        assert not (await store.load()).ok

        path.write_text(json.dumps({"extreme_shock": ["gore"]}), encoding="utf-8")
        assert not (await store.load()).ok

        outcome = await store.reload()
        assert outcome.ok
        assert store.lexicon == {Category.EXTREME_SHOCK: ["gore"]}

    async def test_matchers_cached_until_signature_changes(self, write_lexicon):
        path = write_lexicon({"aggression_violence": ["kill"]})
        store = LexiconStore(path)
        await store.load()

        first = store.matchers()
        assert store.matchers() is first

        # Same content after reload keeps the compiled set
        await store.reload()
        assert store.matchers() is first

        with open(path, "w", encoding="utf-8") as f:
            json.dump({"aggression_violence": ["stab"]}, f)
        await store.reload()
        rebuilt = store.matchers()
        assert rebuilt is not first
        assert rebuilt.signature == store.signature

    async def test_summary(self, write_lexicon):
        words = [f"word{i}" for i in range(15)]
        store = LexiconStore(write_lexicon({"scam_solicitation": words}))
        await store.load()

        summary = store.summary(sample_size=10)
        assert summary == {"scam_solicitation": {"count": 15, "sample": words[:10]}}

    async def test_summary_empty_when_load_failed(self, tmp_path):
        store = LexiconStore(str(tmp_path / "nope.json"))
        await store.load()
        assert store.summary() == {}

    def test_bundled_lexicon_is_valid(self):
        from feedguard.settings import DEFAULT_LEXICON_PATH

        with open(DEFAULT_LEXICON_PATH, encoding="utf-8") as f:
            lexicon = normalize_lexicon(json.load(f))
        assert Category.AGGRESSION_VIOLENCE in lexicon
        assert all(words for words in lexicon.values())
