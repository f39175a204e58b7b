"""
Anonymous workspace identity.

There are no accounts. Each client owns a generated workspace id, created
once and then reused; the HTTP API receives it in the X-Workspace-Id header.
"""

import logging
import secrets
import string
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import g, jsonify, request

from .config import Config

logger = logging.getLogger(__name__)

WORKSPACE_HEADER = "X-Workspace-Id"
WORKSPACE_PREFIX = "guest_"
MAX_WORKSPACE_ID_LENGTH = 255

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_workspace_id() -> str:
    """Return a fresh id: ``guest_`` followed by 13 base-36 characters."""
    return WORKSPACE_PREFIX + "".join(secrets.choice(_ID_ALPHABET) for _ in range(13))


def load_or_create_workspace_id(path: Optional[Path] = None) -> str:
    """
    Load the workspace id stored at ``path``, creating and persisting one if
    the file is missing or empty.

    Args:
        path: File holding the id (default: Config.IDENTITY_FILE; parent
            directories are created)

    Returns:
        The workspace id
    """
    path = Path(path or Config.IDENTITY_FILE)
    if path.exists():
        existing = path.read_text(encoding="utf-8").strip()
        if existing:
            return existing

    workspace_id = generate_workspace_id()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(workspace_id + "\n", encoding="utf-8")
    logger.info("created new workspace id at %s", path)
    return workspace_id


def get_workspace_id() -> Optional[str]:
    """
    Extract the workspace id from the request header.

    Returns:
        The id if present and well-formed, None otherwise
    """
    value = request.headers.get(WORKSPACE_HEADER, "").strip()
    if not value or len(value) > MAX_WORKSPACE_ID_LENGTH:
        return None
    return value


def require_workspace(f):
    """
    Decorator to require a workspace id for a Flask route.

    Usage:
        @bp.get('/notes')
        @require_workspace
        def list_notes():
            workspace_id = g.workspace_id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        workspace_id = get_workspace_id()
        if not workspace_id:
            return jsonify({"error": f"Missing {WORKSPACE_HEADER} header"}), 401

        g.workspace_id = workspace_id
        return f(*args, **kwargs)

    return decorated_function
