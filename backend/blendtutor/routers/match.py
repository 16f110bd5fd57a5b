from typing import List

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..matching import MatchResult, match_phoneme, match_word

router = APIRouter(prefix="/match", tags=["match"])


class PhonemeMatchRequest(BaseModel):
	phoneme: str
	transcripts: List[str] = Field(default_factory=list)
	lenient: bool = False


class WordMatchRequest(BaseModel):
	word: str
	transcripts: List[str] = Field(default_factory=list)
	lenient: bool = False


@router.post("/phoneme", response_model=MatchResult)
def score_phoneme(req: PhonemeMatchRequest):
	return match_phoneme(req.phoneme, req.transcripts, req.lenient)


@router.post("/word", response_model=MatchResult)
def score_word(req: WordMatchRequest):
	return match_word(req.word, req.transcripts, req.lenient)
