from __future__ import annotations

import logging
import secrets
import string
import threading
import uuid
from typing import Dict, List, Optional

from .clock import Clock
from .models import Team, TeamMember, TeamStreak
from .store import BaseStore, StoreError

logger = logging.getLogger(__name__)

TEAM_KEY_PREFIX = "team:"
ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits
ACCESS_CODE_LENGTH = 6


def normalize_access_code(code: Optional[str]) -> str:
    return "".join(str(code or "").split()).upper()


def generate_access_code() -> str:
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


class TeamRepository:
    """Load/save whole-team snapshots.

    There is no optimistic-concurrency check; callers that mutate a team hold
    :meth:`lock` for the team id across the load-transform-save sequence.
    """

    def __init__(self, store: BaseStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock(self, team_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(team_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[team_id] = lock
            return lock

    def get_team(self, team_id: str) -> Optional[Team]:
        try:
            raw = self._store.get_json(f"{TEAM_KEY_PREFIX}{team_id}")
        except StoreError:
            logger.exception("failed to load team %s", team_id)
            return None
        if not isinstance(raw, dict):
            return None
        return Team.from_dict(raw)

    def save_team(self, team: Team) -> None:
        team.updated_at = self._clock.now_ms()
        try:
            self._store.set_json(f"{TEAM_KEY_PREFIX}{team.id}", team.to_dict())
        except StoreError:
            logger.exception("failed to save team %s", team.id)

    def list_teams(self) -> List[Team]:
        try:
            keys = self._store.keys(TEAM_KEY_PREFIX)
        except StoreError:
            logger.exception("failed to list teams")
            return []
        teams: List[Team] = []
        for key in keys:
            team = self.get_team(key[len(TEAM_KEY_PREFIX):])
            if team is not None:
                teams.append(team)
        return teams

    def user_teams(self, user_id: str) -> List[Team]:
        return [team for team in self.list_teams() if team.member(user_id) is not None]

    def find_by_access_code(self, code: str) -> Optional[Team]:
        wanted = normalize_access_code(code)
        if not wanted:
            return None
        for team in self.list_teams():
            if team.access_code == wanted:
                return team
        return None

    def create_team(
        self,
        owner_id: str,
        name: str,
        description: str = "",
        is_public: bool = True,
        max_members: int = 10,
        owner_name: Optional[str] = None,
        access_code: Optional[str] = None,
    ) -> Team:
        now = self._clock.now_ms()
        team = Team(
            id=f"{now}-{uuid.uuid4().hex[:9]}",
            name=name,
            owner_id=owner_id,
            description=description,
            members=[
                TeamMember(
                    user_id=owner_id,
                    name=owner_name or owner_id,
                    role="owner",
                    joined_at=now,
                )
            ],
            is_public=is_public,
            access_code=normalize_access_code(access_code) or generate_access_code(),
            max_members=max(1, int(max_members)),
            streak=TeamStreak(last_session_date=str(self._clock.day_of(now))),
            created_at=now,
        )
        self.save_team(team)
        logger.info("team created id=%s owner=%s", team.id, owner_id)
        return team

    def add_member(
        self,
        team_id: str,
        user_id: str,
        name: Optional[str] = None,
        access_code: Optional[str] = None,
    ) -> Optional[Team]:
        """Join a team. Private teams need their access code."""
        with self.lock(team_id):
            team = self.get_team(team_id)
            if team is None:
                logger.warning("add_member: team %s not found", team_id)
                return None
            code = normalize_access_code(access_code)
            if not team.is_public and (not code or code != team.access_code):
                logger.warning("add_member: wrong access code for private team %s", team_id)
                return None
            if team.member(user_id) is not None:
                logger.warning("add_member: %s already in team %s", user_id, team_id)
                return None
            if len(team.members) >= team.max_members:
                logger.warning("add_member: team %s is full", team_id)
                return None
            team.members.append(
                TeamMember(user_id=user_id, name=name or user_id, joined_at=self._clock.now_ms())
            )
            self.save_team(team)
            return team

    def remove_member(self, team_id: str, user_id: str) -> bool:
        with self.lock(team_id):
            team = self.get_team(team_id)
            if team is None:
                return False
            member = team.member(user_id)
            if member is None:
                return False
            if member.role == "owner" and len(team.members) > 1:
                logger.warning("owner %s must transfer ownership before leaving", user_id)
                return False
            if len(team.members) == 1:
                try:
                    self._store.delete(f"{TEAM_KEY_PREFIX}{team_id}")
                except StoreError:
                    logger.exception("failed to delete team %s", team_id)
                return True
            team.members = [item for item in team.members if item.user_id != user_id]
            self.save_team(team)
            return True

    def join_with_access_code(
        self, user_id: str, code: str, name: Optional[str] = None
    ) -> Optional[Team]:
        team = self.find_by_access_code(code)
        if team is None:
            logger.warning("join: no team for access code")
            return None
        return self.add_member(team.id, user_id, name, access_code=code)
