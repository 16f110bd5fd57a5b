"""
Speech Response Matching
========================

Decides whether ASR transcripts of a child's attempt should be accepted for a
target phoneme or word.

Isolated phoneme sounds are routinely transcribed as unrelated short words
(the sound "t" comes back as "tea"), so phonemes are matched very leniently.
Whole words are acoustically distinctive and recognised far better, so they
are matched more strictly.

Both matchers are pure functions: the same inputs always give the same
MatchResult, nothing is mutated, and no input string makes them raise.

Tiers:
- Phonemes: accept table -> first letter / digraph prefix -> lenient any
- Words: exact -> substring -> child-speech variant -> edit distance -> lenient any
"""

from __future__ import annotations

import re
from typing import Dict, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict
from rapidfuzz.distance import Levenshtein


Confidence = Literal["high", "medium", "low"]


# ============================================================================
# RESULT MODEL
# ============================================================================

class MatchResult(BaseModel):
	"""
	Judgement for one scoring call.

	best_transcript is the normalized transcript that supported the decision,
	or the first normalized transcript (or "") when nothing matched.
	"""
	model_config = ConfigDict(frozen=True)

	matched: bool
	confidence: Confidence
	best_transcript: str = ""


# ============================================================================
# PHONEME ACCEPT TABLE
# ============================================================================

# Strings speech recognisers are known to produce when a child says each
# taught sound in isolation.
PHONEME_ACCEPT_MAP: Dict[str, List[str]] = {
	# Single consonants
	"c": ["see", "sea", "c", "k", "key", "ski", "cee", "si", "seek"],
	"s": ["s", "es", "yes", "us", "ss", "ass", "ace"],
	"m": ["m", "am", "um", "em", "him", "mm", "hmm", "me"],
	"h": ["h", "age", "ha", "hey", "hay", "ach", "huh"],
	"b": ["b", "be", "bee", "beat", "bead", "v", "bee's"],
	"f": ["f", "if", "off", "of", "eff", "enough"],
	"d": ["d", "dee", "the", "de", "did", "do"],
	"l": ["l", "el", "ill", "all", "elle", "hell", "al"],
	"p": ["p", "pee", "pe", "pea", "pp"],
	"j": ["j", "jay", "je", "day", "g", "gee"],
	"r": ["r", "are", "our", "er", "or", "ah"],
	"n": ["n", "in", "an", "en", "and", "end", "hen"],
	"g": ["g", "gee", "ge", "ji", "key", "ghee"],
	"t": ["t", "tea", "tee", "to", "too", "it", "t's"],
	"w": ["w", "we", "wee", "double", "you"],
	"z": ["z", "zee", "is", "zed", "z's"],
	"k": ["k", "key", "okay", "k's", "cake"],
	"x": ["x", "ex", "eggs", "x's"],

	# Short vowels
	"a": ["a", "ah", "uh", "ha", "ay", "hey", "aah", "i"],
	"i": ["i", "e", "ee", "it", "ih", "eye", "aye"],
	"o": ["o", "oh", "owe", "or", "all", "awe", "ooh"],
	"u": ["u", "uh", "up", "a", "ugh", "huh", "oo"],
	"e": ["e", "eh", "a", "air", "yeah", "ed", "head"],

	# Digraphs sound more like real words, so recognisers do better on them
	"sh": ["sh", "she", "shh", "show", "shush", "ship", "shah", "shoe"],
	"ch": ["ch", "chew", "chi", "check", "church", "cheese", "choose"],
	"th": ["th", "the", "they", "that", "this", "thee", "think", "though"],

	# Blends that appear as standalone phoneme cards
	"st": ["st", "stay", "stop", "still", "start", "east"],
	"cl": ["cl", "clear", "clean", "class", "clay"],
	"fr": ["fr", "free", "from", "fry", "for"],
	"fl": ["fl", "fly", "flow", "floor", "flat", "flo"],
	"sp": ["sp", "spy", "spin", "spot", "spa"],
	"mp": ["mp", "imp", "amp", "um"],
	"nd": ["nd", "and", "end", "hand"],
	"lk": ["lk", "elk", "ilk", "milk", "walk"],
	"ng": ["ng", "ring", "sing", "in"],
	"ck": ["ck", "k", "key", "check"],
}

# Common phonological substitutions in young children's speech. Each rule is
# applied on its own, never combined with the others.
CHILD_SUBSTITUTIONS: List[Tuple[str, str]] = [
	("th", "f"),  # "thin" -> "fin"
	("th", "d"),  # "the" -> "de"
	("r", "w"),   # "red" -> "wed"
	("l", "w"),   # "leg" -> "weg"
]

_STRIP_RE = re.compile(r"[^a-z' ]")


# ============================================================================
# HELPERS
# ============================================================================

def normalize_transcript(text: str) -> str:
	"""Lowercase, drop everything outside [a-z' ] and trim."""
	return _STRIP_RE.sub("", (text or "").lower()).strip()


def _normalize_all(transcripts: List[str]) -> List[str]:
	return [normalize_transcript(t) for t in transcripts]


def _no_match(normalized: List[str]) -> MatchResult:
	return MatchResult(
		matched=False,
		confidence="low",
		best_transcript=normalized[0] if normalized else "",
	)


def _lenient_match(normalized: List[str]) -> MatchResult | None:
	if any(normalized):
		return MatchResult(matched=True, confidence="low", best_transcript=normalized[0])
	return None


def generate_child_variants(word: str) -> List[str]:
	"""
	One variant per substitution rule that actually changes the word.

	Args:
		word: Expected word, already lowercased

	Returns:
		Variants in rule order, e.g. "three" -> ["free", "dree", "thwee"]
	"""
	variants: List[str] = []
	for pattern, replacement in CHILD_SUBSTITUTIONS:
		variant = word.replace(pattern, replacement)
		if variant != word:
			variants.append(variant)
	return variants


def levenshtein(a: str, b: str) -> int:
	"""Exact edit distance with unit insert/delete/substitute costs."""
	return Levenshtein.distance(a, b)


def max_edit_distance(word: str) -> int:
	return 1 if len(word) <= 3 else 2


# ============================================================================
# MATCHERS
# ============================================================================

def match_phoneme(phoneme: str, transcripts: List[str], lenient: bool = False) -> MatchResult:
	"""Match a child's spoken phoneme against the expected sound.

	Three-tier approach: accept table (high) -> first letter or digraph
	prefix (medium) -> accept anything non-empty when lenient (low).

	Args:
		phoneme: Phoneme key such as "c" or "sh"
		transcripts: Raw transcript alternatives from one listening attempt
		lenient: True on retries, accepts any non-empty speech as a last resort

	Returns:
		MatchResult for the attempt
	"""
	if not transcripts:
		return _no_match([])

	p = (phoneme or "").lower().strip()
	normalized = _normalize_all(transcripts)

	# Tier 1: accept table lookup, tokens first then the full transcript
	accept = PHONEME_ACCEPT_MAP.get(p)
	if accept:
		for t in normalized:
			for word in t.split():
				if word in accept:
					return MatchResult(matched=True, confidence="high", best_transcript=t)
			if t in accept:
				return MatchResult(matched=True, confidence="high", best_transcript=t)

	# Tier 2: first letter for single sounds, prefix for digraphs and blends
	if len(p) == 1:
		for t in normalized:
			if t and t[0] == p:
				return MatchResult(matched=True, confidence="medium", best_transcript=t)
	elif len(p) == 2:
		for t in normalized:
			if t.startswith(p):
				return MatchResult(matched=True, confidence="medium", best_transcript=t)

	# Tier 3: lenient mode accepts any sound at all
	if lenient:
		result = _lenient_match(normalized)
		if result is not None:
			return result

	return _no_match(normalized)


def match_word(expected_word: str, transcripts: List[str], lenient: bool = False) -> MatchResult:
	"""Match a child's spoken word against the expected word.

	Stricter than phoneme matching but still forgiving of filler words,
	typical child substitutions and small recognition slips.
	"""
	if not transcripts:
		return _no_match([])

	expected = normalize_transcript(expected_word)
	normalized = _normalize_all(transcripts)

	if expected:
		# Tier 1: exact match on a token or the whole transcript
		for t in normalized:
			if t == expected or expected in t.split():
				return MatchResult(matched=True, confidence="high", best_transcript=t)

		# Tier 2: contained in the transcript ("um cat")
		for t in normalized:
			if expected in t:
				return MatchResult(matched=True, confidence="medium", best_transcript=t)

		# Tier 3: common child substitutions ("wed" for "red")
		variants = generate_child_variants(expected)
		for t in normalized:
			words = t.split()
			for variant in variants:
				if variant in words or variant in t:
					return MatchResult(matched=True, confidence="medium", best_transcript=t)

		# Tier 4: edit distance against each token
		limit = max_edit_distance(expected)
		for t in normalized:
			for word in t.split():
				if levenshtein(expected, word) <= limit:
					return MatchResult(matched=True, confidence="medium", best_transcript=t)

	# Tier 5: lenient mode accepts any sound at all
	if lenient:
		result = _lenient_match(normalized)
		if result is not None:
			return result

	return _no_match(normalized)
