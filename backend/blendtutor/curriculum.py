from __future__ import annotations
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from .matching import PHONEME_ACCEPT_MAP


class PhonemeWord(BaseModel):
	# The complete written word, e.g. "cat"
	word: str = Field(min_length=1)
	# Ordered phonemes, e.g. ["c", "a", "t"]
	phonemes: List[str] = Field(default_factory=list)


class Lesson(BaseModel):
	"""
	One day of the 14-day programme.

	Phase 1 (days 1-4) is simple CVC blending, phase 2 (days 5-9) CCVC/CVCC
	speed drills, phase 3 (days 10-14) adds a short decodable text.
	"""
	day: int = Field(ge=1, le=14)
	phase: Literal[1, 2, 3]
	title: str
	description: str = ""
	words: List[PhonemeWord] = Field(default_factory=list)
	decodable_text: Optional[str] = None


def uncovered_phonemes(words: Iterable[PhonemeWord]) -> List[str]:
	"""Phonemes with no accept list that the prefix heuristic cannot cover
	either (empty, or longer than two letters).

	Such phonemes can only ever be accepted in lenient mode.
	"""
	missing: List[str] = []
	for w in words:
		for p in w.phonemes:
			key = p.lower().strip()
			if key in PHONEME_ACCEPT_MAP or 1 <= len(key) <= 2:
				continue
			if key not in missing:
				missing.append(key)
	return missing
