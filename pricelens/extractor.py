"""Structural extraction of raw field strings from storefront markup.

The extractor walks a parsed document with the declarative rules of a
SelectorSet and yields one RawItem per container node. It never looks
at field values: deciding whether "4,5 von 5 Sternen" is a rating is
the normalizer's job. Keeping the two apart means a markup change can
only ever make a field absent, never silently misparse it.

Design Rationale:
    The document is parsed once with BeautifulSoup (lxml tree builder,
    which always provides html/head/body even for fragments) and
    queried through soupsieve CSS selectors. Extraction is lazy and
    restartable: iterating ExtractedItems twice walks the tree twice
    and yields equal items.
"""

from collections.abc import Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag

from pricelens.logger import get_logger
from pricelens.models import RawItem
from pricelens.selectors import FieldRule, SelectorSet

log = get_logger(__name__)


class DocumentModel:
    """Parsed, queryable view of one HTML document.

    Attributes:
        root: BeautifulSoup tree of the document.
    """

    def __init__(self, markup: bytes | str) -> None:
        self.root = BeautifulSoup(markup, "lxml")

    def select_one(self, css: str) -> Tag | None:
        return self.root.select_one(css)


def _node_value(node: Tag, attribute: str | None) -> str | None:
    """Text content or attribute value of a node, None when empty."""
    if attribute is None:
        value = node.get_text(" ", strip=True)
    else:
        raw = node.get(attribute)
        # Multi-valued attributes (class, rel) come back as lists
        value = " ".join(raw) if isinstance(raw, list) else raw

    if value is None:
        return None
    value = " ".join(value.split())
    return value or None


def resolve_field(node: Tag, rule: FieldRule) -> str | None:
    """Resolve one field rule against a container node.

    Each rule of the fallback chain is tried in order; the first one that
    reaches a node with a non-empty value wins. Exhausting the chain is a
    normal outcome and yields None.

    Args:
        node: Container node (or document root for page-level fields).
        rule: Primary rule, with optional fallbacks.

    Returns:
        The raw string, or None if no rule matched.
    """
    for candidate in rule.chain():
        target = node if candidate.css is None else node.select_one(candidate.css)
        if target is None:
            continue
        value = _node_value(target, candidate.attribute)
        if value is not None:
            return value
    return None


def select_containers(root: Tag, rule: FieldRule | None) -> list[Tag]:
    """All container nodes for the first rule of the chain that matches any."""
    if rule is None:
        return []
    for candidate in rule.chain():
        if candidate.css is None:
            return [root]
        nodes = root.select(candidate.css)
        if nodes:
            return nodes
    return []


class ExtractedItems:
    """Lazy, restartable sequence of RawItem for one document.

    Example:
        items = extract(DocumentModel(html), get_selector_set(kind, region))
        for raw in items:
            ...
    """

    def __init__(self, document: DocumentModel, selector_set: SelectorSet) -> None:
        self.document = document
        self.selector_set = selector_set

    def __iter__(self) -> Iterator[RawItem]:
        containers = select_containers(self.document.root, self.selector_set.container)
        log.debug(
            "Containers matched",
            page_kind=self.selector_set.page_kind.value,
            count=len(containers),
        )
        for position, container in enumerate(containers):
            fields = {
                name: resolve_field(container, rule)
                for name, rule in self.selector_set.fields.items()
            }
            yield RawItem(position=position, fields=fields)


def extract(document: DocumentModel, selector_set: SelectorSet) -> ExtractedItems:
    """Extract raw items from a document.

    An empty rule set, or a container rule matching nothing, yields zero
    items rather than an error.
    """
    if selector_set.is_empty:
        log.warning("Empty selector set - no items extracted", page_kind=selector_set.page_kind.value)
    return ExtractedItems(document, selector_set)


def extract_page_fields(document: DocumentModel, selector_set: SelectorSet) -> dict[str, str | None]:
    """Resolve the page-level rules (result count, next link) once."""
    return {
        name: resolve_field(document.root, rule)
        for name, rule in selector_set.page_fields.items()
    }


def is_blocked(document: DocumentModel, selector_set: SelectorSet) -> str | None:
    """First blocked-page marker present in the document, if any."""
    for css in selector_set.blocked_markers:
        if document.select_one(css) is not None:
            return css
    return None
