"""Location to franchise code mapping.

Sales exports name kitchens by free-text location ("Bolton Kitchen",
"bolton  kitchen ", "CHESTERS - Bolton"). Kitchen_Mapping rows translate those
into franchise codes. Resolution order:

1. Exact location match
2. Case-folded, whitespace-collapsed match
3. Fuzzy: substring either way or franchise name alias (min 3 chars, the
   shorter string covering at least the threshold share of the longer one),
   or token similarity at or above the threshold

Only active mappings that carry a franchise code take part. Locations made of
noise words only ("Kitchen") never match fuzzily. A fuzzy tie
between different franchise codes resolves to nothing: the row stays unmapped
rather than being credited to the wrong franchise.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from models.canonical import KitchenMapping


NOISE_WORDS = {"the", "and", "of", "a", "an", "kitchen", "ltd"}

MIN_SUBSTRING_LENGTH = 3

DEFAULT_THRESHOLD = 0.8


class LocationMatchType(str, Enum):
    EXACT = "EXACT"
    NORMALIZED = "NORMALIZED"
    SUBSTRING = "SUBSTRING"
    FRANCHISE_NAME = "FRANCHISE_NAME"
    TOKEN_SIMILARITY = "TOKEN_SIMILARITY"


class LocationMatch(BaseModel):
    """A resolved franchise code and how it was found."""
    franchise_code: str
    mapping_location: str
    match_type: LocationMatchType
    score: float = 1.0


# =============================================================================
# Normalization
# =============================================================================

def normalize_location(location: Optional[str]) -> str:
    """Case-fold and collapse internal whitespace."""
    if not location:
        return ""
    return " ".join(str(location).split()).casefold()


def tokenize_location(location: str) -> List[str]:
    """Significant lowercase tokens, unique, in order.

    Examples:
        >>> tokenize_location("CHESTERS - Bolton Kitchen")
        ['chesters', 'bolton']
    """
    tokens = re.split(r"[^a-z0-9]+", normalize_location(location))
    seen = set()
    result = []
    for token in tokens:
        if len(token) > 1 and token not in NOISE_WORDS and token not in seen:
            seen.add(token)
            result.append(token)
    return result


def calculate_token_similarity(tokens1: List[str], tokens2: List[str]) -> float:
    """Jaccard overlap plus bonuses for a matching first token and partial tokens.

    Returns:
        Similarity score from 0.0 to 1.0
    """
    if not tokens1 or not tokens2:
        return 0.0

    set1 = set(tokens1)
    set2 = set(tokens2)
    intersection = set1 & set2
    union = set1 | set2

    jaccard = len(intersection) / len(union)

    first_match_bonus = 0.15 if tokens1[0] == tokens2[0] else 0.0

    # Partial token matching (abbreviations like "manc" / "manchester")
    partial_matches = 0.0
    for t1 in set1 - intersection:
        for t2 in set2 - intersection:
            if len(t1) >= MIN_SUBSTRING_LENGTH and len(t2) >= MIN_SUBSTRING_LENGTH:
                if t1 in t2 or t2 in t1:
                    partial_matches += 0.5
                    break
    partial_bonus = min(0.2, partial_matches * 0.1)

    return min(1.0, jaccard + first_match_bonus + partial_bonus)


def _containment_score(a: str, b: str) -> float:
    """shorter/longer when one string contains the other (both >= 3 chars), else 0."""
    if len(a) < MIN_SUBSTRING_LENGTH or len(b) < MIN_SUBSTRING_LENGTH:
        return 0.0
    if a in b or b in a:
        return min(len(a), len(b)) / max(len(a), len(b))
    return 0.0


# =============================================================================
# Mapper
# =============================================================================

class LocationMapper:
    """Resolves raw sales locations against a snapshot of Kitchen_Mapping.

    Usage:
        mapper = LocationMapper(await repo.list_kitchen_mappings())
        match = mapper.resolve("Bolton Kitchen")
        code = match.franchise_code if match else ""
    """

    def __init__(self, mappings: List[KitchenMapping], threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold
        self.mappings = [
            m for m in mappings
            if m.active and m.franchise_code.strip() and m.location.strip()
        ]
        self._exact: Dict[str, KitchenMapping] = {}
        self._normalized: Dict[str, KitchenMapping] = {}
        for mapping in self.mappings:
            self._exact.setdefault(mapping.location.strip(), mapping)
            self._normalized.setdefault(normalize_location(mapping.location), mapping)

    def resolve(self, location: Optional[str]) -> Optional[LocationMatch]:
        """Find the franchise code for a raw location, or None if unmapped/ambiguous."""
        if not location or not str(location).strip():
            return None
        raw = str(location).strip()

        mapping = self._exact.get(raw)
        if mapping is not None:
            return self._match(mapping, LocationMatchType.EXACT)

        normalized = normalize_location(raw)
        mapping = self._normalized.get(normalized)
        if mapping is not None:
            return self._match(mapping, LocationMatchType.NORMALIZED)

        return self._resolve_fuzzy(normalized)

    def franchise_code(self, location: Optional[str]) -> str:
        match = self.resolve(location)
        return match.franchise_code if match else ""

    def _match(self, mapping: KitchenMapping, match_type: LocationMatchType, score: float = 1.0) -> LocationMatch:
        return LocationMatch(
            franchise_code=mapping.franchise_code.strip(),
            mapping_location=mapping.location,
            match_type=match_type,
            score=score,
        )

    def _score(self, normalized: str, tokens: List[str], mapping: KitchenMapping) -> Tuple[float, Optional[LocationMatchType]]:
        candidate = normalize_location(mapping.location)
        name = normalize_location(mapping.franchise_name)

        if name and name == normalized:
            return 1.0, LocationMatchType.FRANCHISE_NAME

        best: Tuple[float, Optional[LocationMatchType]] = (0.0, None)
        if not tokens:
            return best

        contained = _containment_score(normalized, candidate)
        if contained >= self.threshold and contained > best[0]:
            best = (contained, LocationMatchType.SUBSTRING)

        if name:
            contained = _containment_score(normalized, name)
            if contained >= self.threshold and contained > best[0]:
                best = (contained, LocationMatchType.FRANCHISE_NAME)

        similarity = calculate_token_similarity(tokens, tokenize_location(mapping.location))
        if similarity >= self.threshold and similarity > best[0]:
            best = (similarity, LocationMatchType.TOKEN_SIMILARITY)

        return best

    def _resolve_fuzzy(self, normalized: str) -> Optional[LocationMatch]:
        tokens = tokenize_location(normalized)
        scored = []
        for mapping in self.mappings:
            score, match_type = self._score(normalized, tokens, mapping)
            if match_type is not None:
                scored.append((score, match_type, mapping))

        if not scored:
            return None

        best_score = max(s[0] for s in scored)
        leaders = [s for s in scored if s[0] == best_score]
        codes = {s[2].franchise_code.strip().upper() for s in leaders}
        if len(codes) > 1:
            return None

        score, match_type, mapping = leaders[0]
        return self._match(mapping, match_type, score)
