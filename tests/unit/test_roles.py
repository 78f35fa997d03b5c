"""Tests for canonical role translation."""

import pytest

from stageflow.core.roles import Role, can_manage_definitions, parse_role


class TestParseRole:

    @pytest.mark.parametrize("raw, expected", [
        ("admin", Role.ADMIN),
        ("ADMIN", Role.ADMIN),
        (" Administrator ", Role.ADMIN),
        ("trainer", Role.TRAINEE),
        ("Trainee", Role.TRAINEE),
        ("approver", Role.REVIEWER),
        ("moderator", Role.MODERATOR),
    ])
    def test_known_spellings(self, raw, expected):
        assert parse_role(raw) == expected

    def test_unknown_and_empty_fall_back(self):
        assert parse_role(None) == Role.USER
        assert parse_role("") == Role.USER
        assert parse_role("superhero") == Role.USER
        assert parse_role("superhero", default=Role.TRAINEE) == Role.TRAINEE

    def test_only_admins_manage_definitions(self):
        assert can_manage_definitions(Role.ADMIN)
        for role in (Role.USER, Role.MODERATOR, Role.REVIEWER, Role.TRAINEE):
            assert not can_manage_definitions(role)
