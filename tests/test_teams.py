from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.clock import ManualClock
from climb.store import MemoryStore
from climb.teams import TeamRepository


def _repo():
    clock = ManualClock(1_773_144_000_000)
    return clock, TeamRepository(MemoryStore(), clock)


def test_create_team_seeds_owner_and_streak() -> None:
    clock, repo = _repo()
    team = repo.create_team("alice", "Climbers", "morning crew", owner_name="Alice")

    loaded = repo.get_team(team.id)
    assert loaded.owner_id == "alice"
    assert [(m.user_id, m.role) for m in loaded.members] == [("alice", "owner")]
    assert loaded.streak.current_streak == 0
    assert loaded.streak.last_session_date == "2026-03-10"
    assert loaded.to_dict()["streak"]["streakMultiplier"] == 1.0
    assert [t.id for t in repo.list_teams()] == [team.id]


def test_add_member_rules() -> None:
    clock, repo = _repo()
    team = repo.create_team("alice", "Pair", max_members=2)

    assert repo.add_member(team.id, "bob") is not None
    assert repo.add_member(team.id, "bob") is None
    assert repo.add_member(team.id, "carol") is None
    assert repo.add_member("missing", "carol") is None
    assert len(repo.get_team(team.id).members) == 2


def test_remove_member_and_last_member_deletes_team() -> None:
    clock, repo = _repo()
    team = repo.create_team("alice", "Climbers")
    repo.add_member(team.id, "bob")

    assert repo.remove_member(team.id, "alice") is False
    assert repo.remove_member(team.id, "bob") is True
    assert repo.remove_member(team.id, "alice") is True
    assert repo.get_team(team.id) is None


def test_private_team_needs_access_code() -> None:
    clock, repo = _repo()
    team = repo.create_team("alice", "Quiet Room", is_public=False, access_code="ab 12cd")
    assert team.access_code == "AB12CD"

    assert repo.add_member(team.id, "bob") is None
    assert repo.add_member(team.id, "bob", access_code="WRONG1") is None
    assert repo.join_with_access_code("bob", " ab12cd ") is not None
    assert repo.join_with_access_code("carol", "ZZZZZZ") is None
    assert [m.user_id for m in repo.get_team(team.id).members] == ["alice", "bob"]


def test_generated_code_and_user_teams() -> None:
    clock, repo = _repo()
    first = repo.create_team("alice", "Climbers")
    second = repo.create_team("bob", "Runners")
    repo.add_member(second.id, "alice")

    assert len(first.access_code) == 6
    assert first.access_code.isalnum() and first.access_code.upper() == first.access_code
    assert sorted(t.id for t in repo.user_teams("alice")) == sorted([first.id, second.id])
    assert [t.id for t in repo.user_teams("bob")] == [second.id]
    assert repo.user_teams("nobody") == []
