"""
Tests for the identity prompt firewall
"""

from src.services.prompt_firewall import (
    DEFAULT_STYLE_PROMPT,
    extract_style_keywords,
    filter_prompt,
    generate_safe_prompt,
    is_prompt_safe,
)


def test_style_only_prompt_passes_unchanged():
    result = filter_prompt("standing on a beach at sunset, wearing a white dress")

    assert result.blocked is False
    assert result.filtered_prompt == "standing on a beach at sunset, wearing a white dress"
    assert result.warnings == []


def test_identity_clause_is_dropped():
    result = filter_prompt("make her blonde, wearing a red dress")

    assert result.blocked is True
    assert "blonde" in result.blocked_keywords
    assert result.filtered_prompt == "wearing a red dress"
    assert result.original == "make her blonde, wearing a red dress"


def test_everything_filtered_falls_back_to_default():
    result = filter_prompt("make her older. change the face!")

    assert result.filtered_prompt == DEFAULT_STYLE_PROMPT
    assert any("default style prompt" in w for w in result.warnings)


def test_keywords_match_whole_words_only():
    # "manhattan" must not trip "man", "tanned" must not trip "tan"
    assert is_prompt_safe("walking through manhattan at night")
    assert not is_prompt_safe("make him a man")


def test_multi_word_keywords():
    result = filter_prompt("give her curly   hair, outdoor cafe")

    assert "curly hair" in result.blocked_keywords
    assert result.filtered_prompt == "outdoor cafe"


def test_strict_mode_adds_style_suffix():
    result = generate_safe_prompt("a cup of tea", model_id="m1")
    assert result.filtered_prompt.endswith("Professional photography, natural lighting, high quality.")

    relaxed = generate_safe_prompt("a cup of tea", strict=False)
    assert relaxed.filtered_prompt == "a cup of tea"


def test_extract_style_keywords():
    keywords = extract_style_keywords("Sitting in a park at golden hour")

    assert "sitting" in keywords
    assert "park" in keywords
    assert "golden hour" in keywords
