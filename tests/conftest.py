import pytest


def _raw_match(match_id, *, account_id=123, start=1_700_000_000, hero_id=1, kills=5, deaths=2, assists=7,
               is_radiant=True, radiant_win=True, duration=2400):
    return {
        "id": match_id,
        "didRadiantWin": radiant_win,
        "durationSeconds": duration,
        "startDateTime": start,
        "gameMode": "ALL_PICK_RANKED",
        "lobbyType": "RANKED",
        "players": [
            {
                "steamAccountId": account_id,
                "heroId": hero_id,
                "isRadiant": is_radiant,
                "kills": kills,
                "deaths": deaths,
                "assists": assists,
                "goldPerMinute": 500,
                "experiencePerMinute": 600,
                "numLastHits": 200,
                "numDenies": 10,
            }
        ],
    }


@pytest.fixture
def raw_match():
    """Factory for a STRATZ match payload with one (filtered) player entry."""
    return _raw_match


class RecordingQueue:
    """Stands in for NotificationQueue: records events, dedupes by key."""

    def __init__(self):
        self.events = []
        self._keys = set()

    def enqueue(self, event) -> bool:
        if event.key in self._keys:
            return False
        self._keys.add(event.key)
        self.events.append(event)
        return True

    def of_type(self, cls):
        return [event for event in self.events if isinstance(event, cls)]


@pytest.fixture
def recording_queue():
    return RecordingQueue()
