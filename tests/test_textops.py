import pytest

from oslab.textops import find_substring, left_trim, remove_comments


def test_remove_closed_comment():
    assert remove_comments("a(b)c") == "ac"


def test_unclosed_comment_truncates():
    assert remove_comments("a(bc") == "a"


def test_single_open_paren_kept():
    assert remove_comments("(") == "("


@pytest.mark.parametrize("text", ["", "x", "plain text", "no) parens here"])
def test_text_without_open_paren_unchanged(text):
    assert remove_comments(text) == text


def test_several_comments_removed():
    text = "one(x) two(yy) three(z)"
    result = remove_comments(text)
    assert "(" not in result and ")" not in result
    assert result.split() == ["one", "two", "three"]


def test_removing_whole_text():
    assert remove_comments("(abc)") == ""


@pytest.mark.parametrize(
    "haystack,needle",
    [
        ("hello world", "world"),
        ("hello world", "o"),
        ("aaab", "ab"),
        ("abc", "abcd"),
        ("abc", "x"),
        ("mississippi", "issip"),
        ("abc", "c"),
    ],
)
def test_find_substring_matches_str_find(haystack, needle):
    assert find_substring(haystack, needle) == haystack.find(needle)


def test_find_substring_empty_needle_not_found():
    assert find_substring("abc", "") == -1


@pytest.mark.parametrize("phrase", ["   abc", "abc", "", "    ", " a b "])
def test_left_trim_matches_lstrip(phrase):
    assert left_trim(phrase) == phrase.lstrip(" ")


def test_left_trim_keeps_tabs_and_trailing_spaces():
    assert left_trim("\t x  ") == "\t x  "
    assert left_trim("  x  ").endswith("  ")