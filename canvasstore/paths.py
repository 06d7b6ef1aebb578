"""
Storage key layout.

Every document a tenant owns lives under ``{tenant}/``. These paths are the
durable wire contract: renaming any of them orphans existing data.

    {tenant}/workspaces/{workspaceId}.json
    {tenant}/workspaces-index.json
    {tenant}/canvases/{canvasId}.json
    {tenant}/canvases-index.json
    {tenant}/canvas-data/{canvasId}.json            bundle
    {tenant}/canvas-data/{canvasId}/{nodeId}.json   legacy per-node file
    {tenant}/settings/{name}.json
"""

WORKSPACES = "workspaces"
CANVASES = "canvases"
SETTINGS = "settings"
CANVAS_DATA = "canvas-data"

# Entity types that carry an index document
INDEXED_TYPES = (WORKSPACES, CANVASES)


def workspace_path(tenant: str, workspace_id: str) -> str:
    return f"{tenant}/{WORKSPACES}/{workspace_id}.json"


def workspaces_prefix(tenant: str) -> str:
    return f"{tenant}/{WORKSPACES}/"


def canvas_path(tenant: str, canvas_id: str) -> str:
    return f"{tenant}/{CANVASES}/{canvas_id}.json"


def canvases_prefix(tenant: str) -> str:
    return f"{tenant}/{CANVASES}/"


def index_path(tenant: str, entity_type: str) -> str:
    """Path of the index document for one entity type."""
    return f"{tenant}/{entity_type}-index.json"


def bundle_path(tenant: str, canvas_id: str) -> str:
    """Path of the node data bundle for a canvas."""
    return f"{tenant}/{CANVAS_DATA}/{canvas_id}.json"


def legacy_node_prefix(tenant: str, canvas_id: str) -> str:
    """Prefix holding the legacy one-file-per-node payloads of a canvas.

    Ends with a slash so that deleting canvas ``abc`` never touches the
    files of canvas ``abcd``.
    """
    return f"{tenant}/{CANVAS_DATA}/{canvas_id}/"


def legacy_node_path(tenant: str, canvas_id: str, node_id: str) -> str:
    return f"{legacy_node_prefix(tenant, canvas_id)}{node_id}.json"


def settings_path(tenant: str, name: str = "ai") -> str:
    return f"{tenant}/{SETTINGS}/{name}.json"
