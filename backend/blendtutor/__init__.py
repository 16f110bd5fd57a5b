from .matching import MatchResult, levenshtein, match_phoneme, match_word

__all__ = ["MatchResult", "levenshtein", "match_phoneme", "match_word"]
