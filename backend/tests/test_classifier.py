"""
Tests for the local keyword classifier.
"""

from feedguard.core.classifier import LocalClassifier, classify_text, score_match
from feedguard.core.lexicon import LexiconStore, MatcherSet, normalize_lexicon
from feedguard.models import Category


def matchers_for(mapping):
    return MatcherSet.build({Category(k): v for k, v in mapping.items()})


class TestScoreMatch:

    def test_score_grows_with_length(self):
        assert score_match("bad") == 28
        assert score_match("really bad") == 70

    def test_score_floor_and_ceiling(self):
        assert score_match("a") == 16
        assert score_match("x" * 40) == 85
        assert score_match("") == 12


class TestClassifyText:

    def test_no_match_is_other_zero(self):
        result = classify_text("a calm afternoon", matchers_for({"aggression_violence": ["kill"]}), "p1")
        assert result.id == "p1"
        assert result.risk == 0
        assert result.category is Category.OTHER
        assert result.tags == ()
        assert result.origin == "local"

    def test_empty_text(self):
        result = classify_text("", matchers_for({"aggression_violence": ["kill"]}))
        assert result.category is Category.OTHER

    def test_longer_match_wins_across_categories(self):
        matchers = matchers_for({
            "aggression_violence": ["bad"],
            "extreme_shock": ["really bad"],
        })
        result = classify_text("this is really bad", matchers)
        assert result.category is Category.EXTREME_SHOCK
        assert result.risk == 70

    def test_longer_match_wins_regardless_of_order(self):
        matchers = matchers_for({
            "aggression_violence": ["really bad"],
            "extreme_shock": ["bad"],
        })
        result = classify_text("this is really bad", matchers)
        assert result.category is Category.AGGRESSION_VIOLENCE

    def test_tie_goes_to_canonical_order(self):
        # scam listed first in the file, but aggression comes first canonically
        matchers = MatcherSet.build(normalize_lexicon({
            "scam_solicitation": ["abcd"],
            "aggression_violence": ["wxyz"],
        }))
        result = classify_text("abcd and wxyz", matchers)
        assert result.category is Category.AGGRESSION_VIOLENCE
        assert result.risk == 34

    def test_whitespace_normalized_before_matching(self):
        matchers = matchers_for({"aggression_violence": ["beat up"]})
        result = classify_text("gonna  beat\n\tup  someone", matchers)
        assert result.category is Category.AGGRESSION_VIOLENCE

    def test_match_tag_is_lowercased(self):
        matchers = matchers_for({"misinfo_speculation": ["hoax"]})
        result = classify_text("Total HOAX!", matchers)
        assert result.tags == ("hoax",)

    def test_deterministic(self):
        matchers = matchers_for({"aggression_violence": ["kill"], "scam_solicitation": ["dm me"]})
        first = classify_text("dm me or I kill", matchers, "t")
        second = classify_text("dm me or I kill", matchers, "t")
        assert first == second


class TestLocalClassifier:

    async def test_classify_post(self, lexicon_store, post_factory):
        classifier = LocalClassifier(lexicon_store)
        result = classifier.classify(post_factory("p9", "I will kill you"))

        assert result.id == "p9"
        assert result.category is Category.AGGRESSION_VIOLENCE
        assert 12 <= result.risk <= 85

    async def test_empty_lexicon_never_hits(self, tmp_path, post_factory):
        store = LexiconStore(str(tmp_path / "absent.json"))
        await store.load()
        classifier = LocalClassifier(store)

        result = classifier.classify(post_factory("p1", "kill kill kill"))
        assert result.risk == 0
        assert result.category is Category.OTHER
