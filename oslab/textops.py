"""Small string operations: comment removal, substring search, left trim."""

from __future__ import annotations


def remove_comments(text: str) -> str:
    """Remove every parenthesised span; an unclosed '(' cuts the rest off.

    Scanning resumes where each removed span began and stops once at most
    one character is left from there, so such a last character is kept.
    """
    result = text
    start = 0
    while len(result) > start + 1:
        open_at = result.find("(", start)
        if open_at == -1:
            break
        close_at = result.find(")", open_at + 1)
        if close_at == -1:
            return result[:open_at]
        result = result[:open_at] + result[close_at + 1:]
        start = open_at
    return result


def find_substring(haystack: str, needle: str) -> int:
    """Index of the first occurrence of needle, or -1; an empty needle is never found."""
    if not needle:
        return -1
    return haystack.find(needle)


def left_trim(phrase: str) -> str:
    """The phrase without its leading spaces."""
    return phrase.lstrip(" ")