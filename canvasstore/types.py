"""
Data types for canvas storage.

Documents are plain JSON objects on the wire and in memory. The TypedDicts
below describe their shape for readers and type checkers; nothing in the
store validates against them.

Node payloads form a tagged union keyed by ``type``. Storage code treats a
node's ``data`` as an opaque value and never branches on the variant.
"""

import time
from typing import Any, Literal, Optional, TypedDict, Union


# -- Node payloads ----------------------------------------------------------

class TextNodeData(TypedDict):
    type: Literal["text"]
    title: str
    content: str


class TableColumn(TypedDict, total=False):
    id: str
    name: str
    width: int
    colType: Literal["text", "number", "formula", "date", "percent"]
    format: str


class TableRow(TypedDict, total=False):
    id: str
    label: str
    cells: dict[str, Any]


class TableNodeData(TypedDict, total=False):
    type: Literal["table"]
    title: str
    sheetName: str
    columns: list[TableColumn]
    rows: list[TableRow]
    summaryRow: bool


class ChartNodeData(TypedDict, total=False):
    type: Literal["chart"]
    title: str
    chartType: Literal["line", "bar", "area", "scatter", "pie", "stacked_bar"]
    sourceNodeId: str
    xAxisColumn: str
    seriesColumns: list[str]
    options: dict[str, Any]


class ImageNodeData(TypedDict, total=False):
    type: Literal["image"]
    title: str
    src: str
    alt: str


class FormulaNodeData(TypedDict, total=False):
    type: Literal["formula"]
    title: str
    formula: str
    format: str
    unit: str
    fontSize: int


class PdfNodeData(TypedDict, total=False):
    type: Literal["pdf"]
    title: str
    src: str
    filename: str
    markdown: str


class HtmlNodeData(TypedDict, total=False):
    type: Literal["html"]
    title: str
    html: str


NodeData = Union[
    TextNodeData,
    TableNodeData,
    ChartNodeData,
    ImageNodeData,
    FormulaNodeData,
    PdfNodeData,
    HtmlNodeData,
]


# -- Documents --------------------------------------------------------------

class CanvasNode(TypedDict, total=False):
    id: str
    type: str
    position: dict[str, float]
    size: dict[str, float]
    data: NodeData
    module: str
    isMain: bool
    style: dict[str, Any]
    locked: bool
    zIndex: int
    _dataRef: str  # legacy per-node file path, only seen on read


class Workspace(TypedDict, total=False):
    id: str
    name: str
    icon: str
    description: str
    canvasIds: list[str]
    tags: list[str]
    createdAt: int
    updatedAt: int
    order: int


class Canvas(TypedDict, total=False):
    id: str
    workspaceId: str
    title: str
    template: str
    modules: list[dict[str, Any]]
    nodes: list[CanvasNode]
    edges: list[dict[str, Any]]
    viewport: dict[str, float]
    createdAt: int
    updatedAt: int


class CanvasIndexEntry(TypedDict):
    id: str
    title: str
    workspaceId: str
    createdAt: Optional[int]
    updatedAt: Optional[int]
    nodeCount: int


class AISettings(TypedDict, total=False):
    keys: dict[str, str]
    defaultModel: str


DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


def now_ms() -> int:
    """Current time as epoch milliseconds, the timestamp unit of all documents."""
    return int(time.time() * 1000)


def empty_node_data() -> TextNodeData:
    """Placeholder payload for a node whose data could not be found."""
    return {"type": "text", "title": "", "content": ""}


def has_node_data(node: dict) -> bool:
    """True if the node carries a payload.

    Only a missing key or ``None`` count as absent; ``0``, ``""`` and ``{}``
    are payloads like any other.
    """
    return node.get("data") is not None


def canvas_meta_for_index(canvas: dict) -> CanvasIndexEntry:
    """Project a canvas onto its index entry (no nodes, no edges)."""
    return {
        "id": canvas.get("id"),
        "title": canvas.get("title", ""),
        "workspaceId": canvas.get("workspaceId"),
        "createdAt": canvas.get("createdAt"),
        "updatedAt": canvas.get("updatedAt"),
        "nodeCount": len(canvas.get("nodes") or []),
    }


def sort_by_updated(entries: list[dict]) -> list[dict]:
    """Newest first. Python's sort is stable, so ties keep index order."""
    return sorted(entries, key=lambda e: e.get("updatedAt") or 0, reverse=True)
