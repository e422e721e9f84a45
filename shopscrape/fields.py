from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import Tag

from .normalizer import is_navigable

# (css selector, attribute). A None attribute means the node's text; a None
# selector means the container element itself; a selector prefixed with "^"
# walks up to the nearest ancestor with that tag name (e.g. "^a").
Candidate = Tuple[Optional[str], Optional[str]]


class FieldExtractor:
    """
    Ordered list of selector candidates for one semantic field.

    The first candidate producing a non-empty value wins; there is no scoring
    across candidates.
    """

    def __init__(self, candidates: Sequence[Candidate]):
        self.candidates: List[Candidate] = list(candidates)

    @staticmethod
    def _nodes(el: Tag, selector: Optional[str]) -> List[Tag]:
        if selector is None:
            return [el]
        if selector.startswith("^"):
            parent = el.find_parent(selector[1:])
            return [parent] if parent is not None else []
        return el.select(selector)

    def extract(self, el: Tag) -> Optional[str]:
        for selector, attr in self.candidates:
            for node in self._nodes(el, selector):
                if attr:
                    value = node.get(attr)
                    if isinstance(value, list):
                        value = " ".join(value)
                else:
                    value = node.get_text(" ", strip=True)
                if attr == "href" and not is_navigable(value):
                    continue
                if value and value.strip():
                    return value.strip()
        return None


def text(*selectors: str) -> FieldExtractor:
    return FieldExtractor([(s, None) for s in selectors])


def attr(name: str, *selectors: Optional[str]) -> FieldExtractor:
    return FieldExtractor([(s, name) for s in selectors])


@dataclass
class SelectorConfig:
    """Per-platform container selectors plus one FieldExtractor per raw field."""

    containers: List[str]
    fields: Dict[str, FieldExtractor] = field(default_factory=dict)

    def extract(self, el: Tag) -> Dict[str, Optional[str]]:
        return {name: fx.extract(el) for name, fx in self.fields.items()}
