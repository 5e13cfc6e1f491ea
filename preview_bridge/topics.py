"""Message type and topic constants for the preview bridge."""

# Bridge message types (host <-> sandbox)
IFRAME_READY = "iframe.ready"
UPDATE_PROPERTIES = "update.properties"
DATASOURCE_COMMIT = "datasource.commit"
SANDBOX_ERROR = "sandbox.error"

MESSAGE_TYPES = frozenset(
    {
        IFRAME_READY,
        UPDATE_PROPERTIES,
        DATASOURCE_COMMIT,
        SANDBOX_ERROR,
    }
)

# Host-side bus topics
PREVIEW_READY = "preview.ready"
PREVIEW_DATASOURCE_COMMIT = "preview.datasource.commit"
PREVIEW_ERROR = "preview.error"
PREVIEW_STATE_CHANGED = "preview.state.changed"

__all__ = [
    "IFRAME_READY",
    "UPDATE_PROPERTIES",
    "DATASOURCE_COMMIT",
    "SANDBOX_ERROR",
    "MESSAGE_TYPES",
    "PREVIEW_READY",
    "PREVIEW_DATASOURCE_COMMIT",
    "PREVIEW_ERROR",
    "PREVIEW_STATE_CHANGED",
]
