"""Tests for @mention parsing, rendering and autocomplete."""

from app.models.profile import Profile
from app.services.mentions import (MAX_QUERY_DISTANCE, Mention,
                                   active_mention_query, extract_mentions,
                                   format_mention, render_mentions,
                                   search_mention_candidates, split_mentions)

ALICE_ID = "11111111-2222-3333-4444-555555555555"


def test_extract_mentions_reads_name_and_id():
    text = f"ping @[Alice Smith]({ALICE_ID}) please"
    (mention,) = extract_mentions(text)
    assert mention.display_name == "Alice Smith"
    assert mention.profile_id == ALICE_ID
    assert text[mention.start : mention.end] == f"@[Alice Smith]({ALICE_ID})"


def test_plain_at_is_not_a_mention():
    assert extract_mentions("mail me at bob@example.com or @bob") == []


def test_split_keeps_text_between_mentions():
    parts = split_mentions(f"a @[A]({ALICE_ID}) b")
    assert parts[0] == "a "
    assert isinstance(parts[1], Mention)
    assert parts[2] == " b"


def test_render_mentions_default_and_custom_format():
    text = f"thanks @[Alice]({ALICE_ID})!"
    assert render_mentions(text) == "thanks @Alice!"
    assert render_mentions(text, lambda m: f"<{m.profile_id}>") == f"thanks <{ALICE_ID}>!"


def test_format_mention_round_trips_through_extract():
    profile = Profile(id=ALICE_ID, full_name="Alice [ops]", email="alice@example.com", role="member")
    token = format_mention(profile)
    (mention,) = extract_mentions(token)
    assert mention.profile_id == ALICE_ID
    assert "]" not in mention.display_name


def test_active_query_after_at():
    assert active_mention_query("hello @ali") == "ali"
    assert active_mention_query("hello @") == ""


def test_active_query_respects_cursor():
    text = "hello @ali and more"
    assert active_mention_query(text, cursor=len("hello @al")) == "al"


def test_no_query_after_whitespace_or_escape():
    assert active_mention_query("hello @alice smith") is None
    assert active_mention_query("price \\@ten") is None
    assert active_mention_query("no at sign") is None


def test_no_query_when_at_is_too_far_back():
    text = "@" + "x" * MAX_QUERY_DISTANCE
    assert active_mention_query(text) is None
    assert active_mention_query(text[:-1]) == "x" * (MAX_QUERY_DISTANCE - 1)


def test_search_candidates_excludes_requester_and_filters():
    profiles = [
        Profile(id="1", full_name="Alice", email="alice@example.com", role="member"),
        Profile(id="2", full_name="Alan", email="alan@example.com", role="member"),
        Profile(id="3", full_name="Bob", email="bob@example.com", role="member"),
    ]
    found = search_mention_candidates(profiles, "al", requester_id="1")
    assert [p.id for p in found] == ["2"]
    assert [p.id for p in search_mention_candidates(profiles, "", "3", limit=1)] == ["1"]
