"""
QUESTION SYNTHESIZER TESTS
Opening/closing questions, template reflection, key phrase extraction and
the never-raise fallback.
"""

import pytest

from sixsteps.question_synthesizer import (
    CLOSING_QUESTION,
    FALLBACK_QUESTION,
    QUESTION_TEMPLATES,
    extract_key_phrase,
    extract_metaphor,
    question_synthesizer,
)
from sixsteps.spaces import Space, space_options


class TestKeyPhrase:

    def test_keeps_last_two_significant_words(self):
        assert extract_key_phrase("I notice a heaviness in my chest") == "heaviness chest"

    def test_single_word(self):
        assert extract_key_phrase("I'm feeling it's heavy") == "heavy"

    def test_punctuation_and_whitespace(self):
        assert extract_key_phrase("  A warm,   golden... LIGHT!  ") == "golden light"

    @pytest.mark.parametrize("text", [None, "", "   ", "um, uh... yes", "I am so"])
    def test_nothing_significant(self, text):
        assert extract_key_phrase(text) is None


class TestMetaphor:

    def test_like_a(self):
        assert extract_metaphor("It's like a heavy stone.") == "heavy stone"

    def test_like_without_article(self):
        assert extract_metaphor("It feels like rain, cold and grey") == "rain"

    def test_no_metaphor(self):
        assert extract_metaphor("It is heavy") is None
        assert extract_metaphor(None) is None


class TestQuestions:

    @pytest.mark.parametrize("space,question", [
        ("here", "And what do you notice in this present moment?"),
        ("there", "And where would you like to be?"),
        ("before", "And what was life like before?"),
        ("after", "And what has happened since?"),
        ("inside", "And what do you notice in yourself?"),
        (Space.OUTSIDE, "And what do you notice outside yourself?"),
    ])
    def test_opening_questions(self, space, question):
        assert question_synthesizer.opening_question(space) == question
        assert question_synthesizer.next_question(1, space, "anything at all") == question

    def test_unknown_space_opening(self):
        assert question_synthesizer.opening_question("sideways") == "And when here, what do you notice?"

    def test_reflects_user_words(self):
        question = question_synthesizer.next_question(2, "here", "I notice a heaviness in my chest")
        assert question == "And when heaviness chest, what do you notice?"

    @pytest.mark.parametrize("iteration,question", [
        (2, "And when warm light, what do you notice?"),
        (3, "And what kind of warm light is that warm light?"),
        (4, "And is there anything else about warm light?"),
        (5, "And what does warm light know?"),
        (6, "And when warm light, what do you know now?"),
    ])
    def test_templates(self, iteration, question):
        assert question_synthesizer.next_question(iteration, "inside", "a warm light") == question

    def test_placeholder_when_nothing_to_reflect(self):
        assert question_synthesizer.next_question(5, "here", "um") == "And what does that know?"

    @pytest.mark.parametrize("iteration", [7, 8, 100])
    def test_closing_question_past_limit(self, iteration):
        assert question_synthesizer.next_question(iteration, "here", "anything") == CLOSING_QUESTION
        assert CLOSING_QUESTION == "And what do you know now that you didn't know before?"

    def test_returns_reflected_phrase(self):
        question, reflected = question_synthesizer.next_question_with_phrase(3, "here", "a heavy stone")
        assert reflected == "heavy stone"
        assert question == "And what kind of heavy stone is that heavy stone?"

    def test_follow_up_questions(self):
        assert question_synthesizer.follow_up_question(2, "here", "a warm light") == "And where is warm light?"
        assert question_synthesizer.follow_up_question(5, "here", "a warm light") == "What else is there?"
        assert question_synthesizer.follow_up_question(6, "here", "a warm light") is None

    def test_introduces_no_new_content_words(self):
        text = "I notice a tightness near my shoulders"
        question = question_synthesizer.next_question(2, "here", text)
        def words(s):
            return s.lower().rstrip("?").replace(",", "").split()

        template_words = set(words(QUESTION_TEMPLATES[2]["primary"].replace("{x}", "")))
        for word in words(question):
            assert word in template_words or word in words(text)


class TestFallback:

    def test_bad_substitution_falls_back(self, monkeypatch):
        monkeypatch.setitem(QUESTION_TEMPLATES, 4, {"primary": "And {unknown}?", "follow_up": None})
        assert question_synthesizer.next_question(4, "here", "a warm light") == FALLBACK_QUESTION

    def test_missing_template_falls_back(self, monkeypatch):
        monkeypatch.delitem(QUESTION_TEMPLATES, 5)
        assert question_synthesizer.next_question(5, "here", "a warm light") == FALLBACK_QUESTION


def test_space_options():
    options = space_options()
    assert [o["key"] for o in options] == ["here", "there", "before", "after", "inside", "outside"]
    assert all(o["label"] and o["description"] for o in options)
