"""
Canales de delivery y su correspondencia con los portales del CRP Portal.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional

ChannelId = Literal["glovo", "ubereats", "justeat"]

ALL_CHANNELS: tuple[ChannelId, ...] = ("glovo", "ubereats", "justeat")

# Canales con datos en el backend (Just Eat aún no tiene portal)
CHANNELS_WITH_DATA: tuple[ChannelId, ...] = ("glovo", "ubereats")

PORTAL_IDS: Dict[str, str] = {
    "GLOVO": "E22BC362",
    "GLOVO_NEW": "E22BC362-2",
    "UBEREATS": "3CCD6861",
}

CHANNEL_INFO: Dict[str, Dict[str, str]] = {
    "glovo": {"name": "Glovo", "color": "#ffc244"},
    "ubereats": {"name": "Uber Eats", "color": "#06c167"},
    "justeat": {"name": "Just Eat", "color": "#ff8000"},
}


def portal_to_channel(portal_id: Optional[str]) -> Optional[ChannelId]:
    if portal_id in (PORTAL_IDS["GLOVO"], PORTAL_IDS["GLOVO_NEW"]):
        return "glovo"
    if portal_id == PORTAL_IDS["UBEREATS"]:
        return "ubereats"
    return None


def channel_to_portals(channel: str) -> List[str]:
    if channel == "glovo":
        return [PORTAL_IDS["GLOVO"], PORTAL_IDS["GLOVO_NEW"]]
    if channel == "ubereats":
        return [PORTAL_IDS["UBEREATS"]]
    return []


def should_apply_channel_filter(channels: Optional[Iterable[str]]) -> bool:
    """False when nothing is selected or every channel with data is selected."""
    if not channels:
        return False
    selected = set(channels)
    return not all(ch in selected for ch in CHANNELS_WITH_DATA)


def portal_ids_for_channels(channels: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Portal ids to filter by, or None when no channel filter applies."""
    channels = list(channels or [])
    if not should_apply_channel_filter(channels):
        return None
    portal_ids: List[str] = []
    for ch in channels:
        for pid in channel_to_portals(ch):
            if pid not in portal_ids:
                portal_ids.append(pid)
    return portal_ids


def channel_name(channel: str) -> str:
    info = CHANNEL_INFO.get(channel)
    return info["name"] if info else channel
