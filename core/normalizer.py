"""
Attribute normalization for feature-service records.

Datasets spell the same logical field many ways (OBJECTID, objectid, FID,
GlobalID ...). Each dataset carries a static table mapping a canonical field
to the ordered attribute keys that may hold it; the first key present with a
usable value wins.

Functions:
    extract_field: First usable value among candidate keys
    normalize_id: Canonical feature id as a string (or None)
    normalize_attributes: Canonical field dict for one feature
    deduplicate: Drop repeated ids, keeping the first occurrence
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from core.models import DEFAULT_ID_CANDIDATES, EnrichedFeature, ServiceDescriptor


def _usable(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def extract_field(attributes: Dict[str, Any], candidates: Sequence[str]) -> Any:
    """
    Return the value of the first candidate key present in the attributes.

    None and blank strings count as absent. Zero and False do not.

    Example:
        >>> extract_field({'objectid': 7, 'FID': 3}, ['OBJECTID', 'objectid', 'FID'])
        7
    """
    for key in candidates:
        if key in attributes and _usable(attributes[key]):
            return attributes[key]
    return None


def normalize_id(
    attributes: Dict[str, Any],
    candidates: Sequence[str] = DEFAULT_ID_CANDIDATES
) -> Optional[str]:
    value = extract_field(attributes, candidates)
    if value is None:
        return None
    # 12.0 and 12 are the same OBJECTID
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def normalize_attributes(attributes: Dict[str, Any], descriptor: ServiceDescriptor) -> Dict[str, Any]:
    """
    Build the canonical field dict for a feature.

    Every canonical field in the descriptor's table is present in the result
    (None when no candidate matched); 'id' is always included.
    """
    normalized = {'id': normalize_id(attributes, descriptor.id_candidates)}
    for canonical, candidates in descriptor.field_candidates.items():
        if canonical == 'id':
            continue
        normalized[canonical] = extract_field(attributes, candidates)
    return normalized


def deduplicate(
    features: Iterable[EnrichedFeature],
    seen: Optional[Set[str]] = None
) -> List[EnrichedFeature]:
    """
    Keep the first feature for each id.

    Features without an id are never treated as duplicates of each other.
    The seen set is updated in place when given.
    """
    seen = set() if seen is None else seen
    unique = []
    for feature in features:
        if feature.id is not None:
            if feature.id in seen:
                continue
            seen.add(feature.id)
        unique.append(feature)
    return unique
