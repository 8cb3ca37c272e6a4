"""
Tests for labeled reply options.
"""

from src.sales_assistant.options import (
    FALLBACK_REPLY,
    LabeledOption,
    first_option_text,
    format_options,
    option_by_label,
    parse_labeled_options,
    strip_later_references,
)


class TestParseLabeledOptions:
    def test_three_options(self):
        options = parse_labeled_options("Response A: one\nResponse B: two\nResponse C: three")
        assert options == [
            LabeledOption("A", "one"),
            LabeledOption("B", "two"),
            LabeledOption("C", "three"),
        ]

    def test_case_insensitive_and_preamble_ignored(self):
        options = parse_labeled_options("Here you go.\nresponse a:  first   option\n\nRESPONSE B: second")
        assert [o.label for o in options] == ["A", "B"]
        assert options[0].text == "first option"

    def test_no_markers(self):
        assert parse_labeled_options("Just a plain reply.") == []
        assert parse_labeled_options("") == []

    def test_fallback_reply_has_three_options(self):
        options = parse_labeled_options(FALLBACK_REPLY)
        assert [o.label for o in options] == ["A", "B", "C"]
        assert FALLBACK_REPLY.startswith("Response A:")


class TestFormatting:
    def test_format_round_trip_labels(self):
        text = format_options([LabeledOption("A", "one"), LabeledOption("B", "two")])
        assert text == "Response A: one\nResponse B: two"

    def test_option_by_label(self):
        options = [LabeledOption("A", "one"), LabeledOption("B", "two")]
        assert option_by_label(options, "b").text == "two"
        assert option_by_label(options, "C") is None


class TestFirstOptionText:
    def test_response_a_only(self):
        text = "Response A: Buy now.\nResponse B: Wait a bit.\nResponse C: Ask a friend."
        assert first_option_text(text) == "Buy now."

    def test_first_line_when_unlabeled(self):
        assert first_option_text("We can help with that.\nAnything else?") == "We can help with that."

    def test_never_mentions_later_option(self):
        text = "Response A: Cheaper than what response B suggests.\nResponse B: Premium."
        spoken = first_option_text(text)
        assert spoken == "Cheaper than what"
        assert "response b" not in spoken.lower()

    def test_strip_later_references(self):
        assert strip_later_references("Pick this one, see Response C") == "Pick this one, see"
        assert strip_later_references("Nothing to cut") == "Nothing to cut"

    def test_empty(self):
        assert first_option_text("") == ""
