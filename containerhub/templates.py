"""Example import documents offered for download."""

import json
from typing import Any, Dict

from .models import ItemType

_DISPLAY_NAMES = {
    ItemType.APP: "Application",
    ItemType.VOICE: "AI Voice",
    ItemType.WORKFLOW: "Workflow",
}


def build_template(item_type: ItemType) -> Dict[str, Any]:
    """Return a ``{"containers": [...]}`` example for ``item_type``."""
    item_type = ItemType.parse(item_type)
    return {
        "containers": [
            {
                "title": f"Example {_DISPLAY_NAMES[item_type]}",
                "description": f"This is an example {item_type.value} container",
                "type": item_type.value,
                "industry": "Technology",
                "department": "Engineering",
                "visibility": "public",
                "tags": ["example", "template", item_type.value],
            }
        ]
    }


def render_template(item_type: ItemType) -> str:
    """Template serialized as indented JSON."""
    return json.dumps(build_template(item_type), indent=2)


def template_filename(item_type: ItemType) -> str:
    return f"{ItemType.parse(item_type).value}-template.json"
