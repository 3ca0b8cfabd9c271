# src/rankup/schemas/common.py

"""Common schemas and enums used across multiple resources."""

from enum import Enum


class Game(str, Enum):
    """Games with a supported stats provider and leaderboard."""

    LEAGUE = "league"
    VALORANT = "valorant"

    @property
    def display_name(self) -> str:
        """Human-readable game name, as stored on parties."""
        return GAME_DISPLAY_NAMES[self]


GAME_DISPLAY_NAMES = {
    Game.LEAGUE: "League of Legends",
    Game.VALORANT: "Valorant",
}
