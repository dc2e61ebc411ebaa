import json
import xml.etree.ElementTree as ET

from app.core.exceptions import UnsupportedFormat
from app.schemas.mindmap import MindMapDetail

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "xml": "application/xml",
}


def _number(value) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


def to_json(mindmap: MindMapDetail) -> bytes:
    """Pretty-printed map dictionary, collaborators left out"""
    payload = mindmap.model_dump(mode="json", exclude={"collaborators"})
    return json.dumps(payload, indent=4, ensure_ascii=False).encode("utf-8")


def to_xml(mindmap: MindMapDetail) -> bytes:
    root = ET.Element("mindmap", {
        "id": str(mindmap.id),
        "title": mindmap.title,
        "created": mindmap.created_at.isoformat() if mindmap.created_at else "",
    })

    nodes_element = ET.SubElement(root, "nodes")
    for node in mindmap.nodes:
        node_element = ET.SubElement(nodes_element, "node", {
            "id": str(node.id),
            "parent_id": "" if node.parent_id is None else str(node.parent_id),
            "type": node.node_type,
        })
        # ElementTree escapes markup characters in text and attributes
        ET.SubElement(node_element, "text").text = node.node_text
        ET.SubElement(node_element, "x").text = _number(node.position_x)
        ET.SubElement(node_element, "y").text = _number(node.position_y)
        ET.SubElement(node_element, "color").text = node.color or ""

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def export_mindmap(mindmap: MindMapDetail, export_format: str) -> bytes:
    if export_format == "json":
        return to_json(mindmap)
    if export_format == "xml":
        return to_xml(mindmap)
    raise UnsupportedFormat("Unsupported export format")
