"""Extraction backends sharing one ``extract(text) -> memories`` contract."""

from __future__ import annotations

from recollect.extract.base import Extractor, truncate_conversation
from recollect.extract.command import CommandExtractor
from recollect.extract.lm import LMExtractor, build_lm
from recollect.extract.prompts import build_extraction_prompt
from recollect.extract.response import parse_extraction_response

__all__ = [
    "Extractor",
    "CommandExtractor",
    "LMExtractor",
    "build_lm",
    "build_extraction_prompt",
    "parse_extraction_response",
    "truncate_conversation",
]
