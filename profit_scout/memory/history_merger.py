"""
Merge a session's queries and responses into one ordered transcript.

Pure functions, no I/O:

    turns = merge(queries, responses)        # [DialogueTurn, ...]
    text  = render_transcript(turns)         # "User: Hi\\nAI: Hello! ..."

Ordering is a stable sort on (timestamp, kind, arrival seq): on equal
timestamps a query always precedes a response, and entries of the same
kind fall back to the store's arrival order.
"""
from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple, Union

from profit_scout.core.protocol import DialogueTurn, QueryEntry, ResponseEntry, Speaker

_Entry = Union[QueryEntry, ResponseEntry]

_RANK = {Speaker.USER: 0, Speaker.ASSISTANT: 1}


def _tagged(entries: Iterable[_Entry], expected: type, speaker: Speaker) -> List[Tuple[_Entry, Speaker]]:
    tagged = []
    for entry in entries:
        if not isinstance(entry, expected):
            raise TypeError(
                f"merge() expected {expected.__name__} items, got {type(entry).__name__}"
            )
        tagged.append((entry, speaker))
    return tagged


def merge(
    queries: Sequence[QueryEntry],
    responses: Sequence[ResponseEntry],
) -> List[DialogueTurn]:
    """
    Interleave *queries* and *responses* by timestamp.

    Raises
    ------
    TypeError
        If an item is not a ``QueryEntry`` / ``ResponseEntry`` respectively.
    """
    combined = _tagged(queries, QueryEntry, Speaker.USER) + _tagged(
        responses, ResponseEntry, Speaker.ASSISTANT
    )
    combined.sort(key=lambda item: (item[0].timestamp, _RANK[item[1]], item[0].seq))
    return [DialogueTurn(speaker=speaker, text=entry.text) for entry, speaker in combined]


def render_transcript(turns: Iterable[DialogueTurn]) -> str:
    """Flatten merged turns to ``User: ...`` / ``AI: ...`` lines."""
    return "\n".join(f"{turn.speaker.label}: {turn.text}" for turn in turns)


def build_transcript(
    queries: Sequence[QueryEntry],
    responses: Sequence[ResponseEntry],
) -> str:
    """``render_transcript(merge(queries, responses))``"""
    return render_transcript(merge(queries, responses))
