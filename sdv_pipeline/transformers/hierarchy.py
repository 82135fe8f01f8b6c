"""
Site > Subject > Visit > CRF > Field tree over merged records.

Rollups are maintained while leaves are attached: each new leaf adds its
counts to the CRF, visit, subject and site above it, and each of those
recomputes its percentage from its own summed counts. Percentages are never
averaged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..core.constants import (
    UNKNOWN_CRF,
    UNKNOWN_FIELD,
    UNKNOWN_SITE,
    UNKNOWN_SUBJECT,
    UNKNOWN_VISIT,
)
from ..core.enums import HierarchyLevel
from ..core.logging import get_logger, log_execution_time
from ..utils.number_utils import percent, round_half_up

logger = get_logger(__name__)

COUNT_FIELDS = (
    "data_verified",
    "data_entered",
    "data_needing_review",
    "data_expected",
    "opened_queries",
    "answered_queries",
)
ESTIMATE_FIELDS = ("estimate_hours", "estimate_days")


@dataclass
class HierarchyNode:
    id: str
    level: HierarchyLevel
    label: str
    data_verified: int = 0
    data_entered: int = 0
    data_needing_review: int = 0
    data_expected: int = 0
    opened_queries: int = 0
    answered_queries: int = 0
    estimate_hours: float = 0.0
    estimate_days: float = 0.0
    sdv_percent: float = 0
    children: List["HierarchyNode"] = field(default_factory=list)
    # Leaf provenance (merge key, reviewer, ...)
    record: Optional[Dict[str, Any]] = None
    # None: follow the caller's expanded set. True/False: forced for lazily loaded subtrees.
    is_collapsed: Optional[bool] = None
    has_lazy_children: bool = False

    @property
    def has_children(self) -> bool:
        return bool(self.children) or self.has_lazy_children

    def add_metrics(self, other: "HierarchyNode") -> None:
        """Fold a leaf's numbers into this node and recompute its percentage."""
        for name in COUNT_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))
        for name in ESTIMATE_FIELDS:
            setattr(self, name, round_half_up(getattr(self, name) + getattr(other, name), 2))
        self.sdv_percent = percent(self.data_verified, self.data_entered)

    def metrics(self) -> Dict[str, Any]:
        values = {name: getattr(self, name) for name in COUNT_FIELDS + ESTIMATE_FIELDS}
        values["sdv_percent"] = self.sdv_percent
        return values

    def to_dict(self, include_children: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "level": self.level.value,
            "label": self.label,
            **self.metrics(),
            "has_children": self.has_children,
        }
        if self.record is not None:
            data["record"] = self.record
        if include_children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def _label(value: Optional[str], default: str) -> str:
    value = (value or "").strip()
    return value or default


def _get(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def make_leaf(record: Any, index: int, path: Tuple[str, str, str, str]) -> HierarchyNode:
    site, subject, visit, crf = path
    label = _label(_get(record, "crf_field"), UNKNOWN_FIELD)
    leaf = HierarchyNode(
        id=f"field-{index}-{site}-{subject}-{visit}-{crf}-{label}",
        level=HierarchyLevel.FIELD,
        label=label,
        data_verified=int(_get(record, "data_verified") or 0),
        data_entered=int(_get(record, "data_entered") or 0),
        data_needing_review=int(_get(record, "data_needing_review") or 0),
        data_expected=int(_get(record, "data_expected") or 0),
        opened_queries=int(_get(record, "opened_queries") or 0),
        answered_queries=int(_get(record, "answered_queries") or 0),
        estimate_hours=float(_get(record, "estimate_hours") or 0),
        estimate_days=float(_get(record, "estimate_days") or 0),
        sdv_percent=float(_get(record, "sdv_percent") or 0),
    )
    leaf.record = {
        "merge_key": _get(record, "merge_key"),
        **(_get(record, "extra_fields") or {}),
    }
    return leaf


class HierarchyBuilder:
    """
    Incrementally assembles the five-level tree.

    ``add`` is O(depth) per record, so building is O(n * depth) with no
    second pass over the tree.
    """

    def __init__(self):
        self.sites: List[HierarchyNode] = []
        self._index: Dict[Tuple[str, ...], HierarchyNode] = {}
        self._leaf_count = 0

    def _get_or_create(self, path: Tuple[str, ...], level: HierarchyLevel, parent: Optional[HierarchyNode]) -> HierarchyNode:
        node = self._index.get(path)
        if node is None:
            node = HierarchyNode(id=f"{level.value}-{'-'.join(path)}", level=level, label=path[-1])
            self._index[path] = node
            if parent is None:
                self.sites.append(node)
            else:
                parent.children.append(node)
        return node

    def add(self, record: Any) -> HierarchyNode:
        site = _label(_get(record, "site_name"), UNKNOWN_SITE)
        subject = _label(_get(record, "subject_id"), UNKNOWN_SUBJECT)
        visit = _label(_get(record, "visit_type"), UNKNOWN_VISIT)
        crf = _label(_get(record, "crf_name"), UNKNOWN_CRF)

        site_node = self._get_or_create((site,), HierarchyLevel.SITE, None)
        subject_node = self._get_or_create((site, subject), HierarchyLevel.SUBJECT, site_node)
        visit_node = self._get_or_create((site, subject, visit), HierarchyLevel.VISIT, subject_node)
        crf_node = self._get_or_create((site, subject, visit, crf), HierarchyLevel.CRF, visit_node)

        leaf = make_leaf(record, self._leaf_count, (site, subject, visit, crf))
        self._leaf_count += 1
        crf_node.children.append(leaf)

        for ancestor in (crf_node, visit_node, subject_node, site_node):
            ancestor.add_metrics(leaf)

        return leaf

    def extend(self, records: Iterable[Any]) -> "HierarchyBuilder":
        for record in records:
            self.add(record)
        return self

    def find(self, node_id: str) -> Optional[HierarchyNode]:
        for node in self._index.values():
            if node.id == node_id:
                return node
        return None


@log_execution_time(logger)
def build_hierarchy(records: Iterable[Any]) -> List[HierarchyNode]:
    """Build the tree for ``records`` (merged records or equivalent mappings)."""
    return HierarchyBuilder().extend(records).sites


def collapse_below(nodes: List[HierarchyNode], depth: int) -> List[HierarchyNode]:
    """
    Copy ``nodes`` keeping ``depth`` levels of children.

    Trimmed nodes are flagged ``has_lazy_children`` and collapsed so a client
    can request them later.
    """
    trimmed = []
    for node in nodes:
        copy = HierarchyNode(**{**node.__dict__, "children": []})
        if node.children:
            if depth > 0:
                copy.children = collapse_below(node.children, depth - 1)
            else:
                copy.has_lazy_children = True
                copy.is_collapsed = True
        trimmed.append(copy)
    return trimmed


def flatten_hierarchy(
    nodes: Iterable[HierarchyNode],
    expanded_ids: Optional[Set[str]] = None,
    depth: int = 0,
) -> List[Dict[str, Any]]:
    """
    Depth-first rows for display.

    A node is expanded when it carries an explicit ``is_collapsed=False`` or
    appears in ``expanded_ids``, which wins over a lazy collapse. Children of a
    collapsed node are left out.
    """
    expanded_ids = expanded_ids or set()
    rows: List[Dict[str, Any]] = []

    for node in nodes:
        is_expanded = node.is_collapsed is False or node.id in expanded_ids
        row = node.to_dict(include_children=False)
        row.update({
            "depth": depth,
            "hasChildren": node.has_children,
            "isExpanded": is_expanded,
        })
        rows.append(row)

        if is_expanded and node.children:
            rows.extend(flatten_hierarchy(node.children, expanded_ids, depth + 1))

    return rows
