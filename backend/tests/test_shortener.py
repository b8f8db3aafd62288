from datetime import timedelta

import pytest

from linkpulse.core import shortener
from linkpulse.core.exceptions import (
    AliasUnavailable,
    DuplicateLink,
    GenerationExhausted,
    InvalidAliasError,
    InvalidURLError,
    LinkUnavailable,
)
from linkpulse.core.shortener import (
    CHARSET,
    generate_short_code,
    is_code_available,
    validate_custom_alias,
)
from linkpulse.models.link import utcnow
from linkpulse.services.links import create_link, list_links, resolve_link
from conftest import OTHER_OWNER_ID, OWNER_ID, day


class TestGenerateShortCode:
    """Test short code generation"""

    def test_generates_lowercase_base36_code(self, db_session):
        code = generate_short_code(db_session, length=7)

        assert len(code) == 7
        assert all(c in CHARSET for c in code)

    def test_retries_on_collision(self, db_session, make_link, monkeypatch):
        make_link(short_code="taken01")
        candidates = iter(["taken01", "taken01", "fresh01"])
        monkeypatch.setattr(shortener, "_random_code", lambda length: next(candidates))

        assert generate_short_code(db_session) == "fresh01"

    def test_collision_with_custom_alias(self, db_session, make_link, monkeypatch):
        make_link(short_code="promo", custom_alias="promo")
        candidates = iter(["promo", "other01"])
        monkeypatch.setattr(shortener, "_random_code", lambda length: next(candidates))

        assert generate_short_code(db_session) == "other01"

    @pytest.mark.parametrize("max_attempts", [1, 5, 100])
    def test_exhaustion_after_max_attempts(self, db_session, make_link, monkeypatch, max_attempts):
        make_link(short_code="taken01")
        calls = []

        def always_taken(length):
            calls.append(length)
            return "taken01"

        monkeypatch.setattr(shortener, "_random_code", always_taken)

        with pytest.raises(GenerationExhausted) as exc_info:
            generate_short_code(db_session, max_attempts=max_attempts)

        assert exc_info.value.attempts == max_attempts
        assert len(calls) == max_attempts


class TestCustomAlias:
    """Test custom alias validation and availability"""

    @pytest.mark.parametrize("alias", ["my-link", "Promo_2024", "abc", "a" * 30])
    def test_valid_aliases(self, alias):
        assert validate_custom_alias(alias) == (True, "")

    @pytest.mark.parametrize("alias", [
        "",
        "ab",
        "a" * 31,
        "has space",
        "emoji🙂",
        "-leading",
        "trailing-",
        "api",
        "Health",
    ])
    def test_invalid_aliases(self, alias):
        is_valid, error = validate_custom_alias(alias)
        assert not is_valid
        assert error

    def test_availability_checks_both_columns(self, db_session, make_link):
        make_link(short_code="abc1234")
        make_link(short_code="summer", custom_alias="summer")

        assert not is_code_available("ABC1234", db_session)
        assert not is_code_available("Summer", db_session)
        assert is_code_available("winter", db_session)


class TestCreateLink:
    """Test link creation"""

    def test_generated_code(self, db_session):
        link = create_link(db_session, OWNER_ID, "https://example.com/article")

        assert link.id is not None
        assert link.short_code == link.short_code.lower()
        assert link.custom_alias is None
        assert link.title == "https://example.com/article"
        assert link.clicks_count == 0
        assert link.is_active

    def test_custom_alias_is_normalized(self, db_session):
        link = create_link(db_session, OWNER_ID, "https://example.com", custom_alias="Spring-Sale", title="Sale")

        assert link.short_code == "spring-sale"
        assert link.custom_alias == "spring-sale"
        assert link.title == "Sale"

    def test_taken_alias_is_rejected(self, db_session):
        create_link(db_session, OWNER_ID, "https://example.com", custom_alias="launch")

        with pytest.raises(AliasUnavailable):
            create_link(db_session, "someone-else", "https://example.org", custom_alias="LAUNCH")

    def test_alias_race_is_closed_by_unique_constraint(self, db_session, monkeypatch):
        create_link(db_session, OWNER_ID, "https://example.com", custom_alias="launch")
        # Simulate a concurrent request that passed the check before the insert landed
        monkeypatch.setattr("linkpulse.services.links.is_code_available", lambda code, db: True)

        with pytest.raises(AliasUnavailable):
            create_link(db_session, OWNER_ID, "https://example.org", custom_alias="launch")

    def test_invalid_alias(self, db_session):
        with pytest.raises(InvalidAliasError):
            create_link(db_session, OWNER_ID, "https://example.com", custom_alias="docs")

    @pytest.mark.parametrize("url", ["not-a-url", "javascript:alert(1)", "https://", "http://localhost/x"])
    def test_invalid_url(self, db_session, url):
        with pytest.raises(InvalidURLError):
            create_link(db_session, OWNER_ID, url)

    def test_same_url_twice_returns_existing_link(self, db_session):
        first = create_link(db_session, OWNER_ID, "https://example.com/article")

        with pytest.raises(DuplicateLink) as exc_info:
            create_link(db_session, OWNER_ID, "https://example.com/article", custom_alias="another")

        assert exc_info.value.link.id == first.id
        assert is_code_available("another", db_session)

    def test_same_url_for_another_owner(self, db_session):
        first = create_link(db_session, OWNER_ID, "https://example.com/article")
        second = create_link(db_session, OTHER_OWNER_ID, "https://example.com/article")

        assert second.id != first.id

    def test_generation_exhausted_propagates(self, db_session, make_link, monkeypatch):
        make_link(short_code="taken01")
        monkeypatch.setattr(shortener, "_random_code", lambda length: "taken01")

        with pytest.raises(GenerationExhausted):
            create_link(db_session, OWNER_ID, "https://example.com")


class TestResolveLink:
    """Test resolving codes to links"""

    def test_case_insensitive(self, db_session, make_link):
        link = make_link(short_code="abc1234")
        assert resolve_link(db_session, "ABC1234").id == link.id

    def test_by_alias(self, db_session, make_link):
        link = make_link(short_code="promo", custom_alias="promo")
        assert resolve_link(db_session, "Promo").id == link.id

    def test_unknown_code(self, db_session):
        assert resolve_link(db_session, "missing") is None

    def test_inactive_link(self, db_session, make_link):
        make_link(short_code="paused1", is_active=False)
        with pytest.raises(LinkUnavailable):
            resolve_link(db_session, "paused1")

    def test_expired_link(self, db_session, make_link):
        make_link(short_code="old1234", expires_at=utcnow() - timedelta(minutes=1))
        with pytest.raises(LinkUnavailable):
            resolve_link(db_session, "old1234")

    def test_not_yet_expired_link(self, db_session, make_link):
        link = make_link(short_code="new1234", expires_at=utcnow() + timedelta(days=1))
        assert resolve_link(db_session, "new1234").id == link.id


class TestListLinks:
    """Test listing an owner's links"""

    def test_newest_first_and_paginated(self, db_session, make_link):
        links = [make_link(created_at=day(f"2024-03-{d:02d}")) for d in range(1, 6)]
        make_link(owner_id=OTHER_OWNER_ID, created_at=day("2024-03-09"))

        page, total = list_links(db_session, OWNER_ID, page=1, page_size=2)
        assert total == 5
        assert [link.id for link in page] == [links[4].id, links[3].id]

        page, total = list_links(db_session, OWNER_ID, page=3, page_size=2)
        assert [link.id for link in page] == [links[0].id]

        page, total = list_links(db_session, OWNER_ID, page=4, page_size=2)
        assert (page, total) == ([], 5)

    def test_search_is_case_insensitive_over_url_code_and_title(self, db_session, make_link):
        by_url = make_link(original_url="https://shop.example.com/Shoes")
        by_code = make_link(short_code="shoes-sale")
        by_title = make_link(title="New SHOES in stock")
        make_link(original_url="https://example.com/hats", title="Hats")

        found, total = list_links(db_session, OWNER_ID, search="  Shoes ")

        assert total == 3
        assert {link.id for link in found} == {by_url.id, by_code.id, by_title.id}

    def test_search_wildcards_are_literal(self, db_session, make_link):
        make_link(title="100% cotton")
        make_link(title="1000 items")

        found, total = list_links(db_session, OWNER_ID, search="0%")

        assert total == 1
        assert found[0].title == "100% cotton"

    def test_created_date_bounds_are_inclusive(self, db_session, make_link):
        make_link(created_at=day("2024-03-01"))
        inside = make_link(created_at=day("2024-03-05"))
        make_link(created_at=day("2024-03-09"))

        found, total = list_links(
            db_session, OWNER_ID,
            start_date=day("2024-03-05"),
            end_date=day("2024-03-05"),
        )

        assert total == 1
        assert found[0].id == inside.id
