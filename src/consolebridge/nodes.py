"""DOM node detection and description.

Two node families are recognized: ``xml.dom`` style nodes (anything that
exposes ``nodeName`` and ``nodeType``, which covers ``xml.dom.minidom``
and browser DOM proxies) and ``xml.etree.ElementTree.Element`` trees.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Protocol, runtime_checkable

from consolebridge.types import TYPE_KEY

ELEMENT_NODE = 1
PROCESSING_INSTRUCTION_NODE = 7
COMMENT_NODE = 8


@runtime_checkable
class DOMNodeLike(Protocol):
    """Structural type of a host UI tree node."""

    nodeName: str
    nodeType: int


def is_dom_node(value: Any) -> bool:
    """Check whether a value is a DOM-like node."""
    if isinstance(value, type):
        return False
    return isinstance(value, (ET.Element, DOMNodeLike))


def describe_dom_node(node: Any) -> dict[str, Any]:
    """Build a ``DOMNode`` tagged record for a node.

    Element nodes additionally carry ``id``, ``className`` and
    ``innerHTML``. ``id`` and ``className`` are omitted when empty or
    absent; ``innerHTML`` is omitted only when it cannot be produced.

    Args:
        node: An ``xml.dom`` style node or an ElementTree element.

    Returns:
        Tagged record dict.
    """
    if isinstance(node, ET.Element):
        return _describe_etree_element(node)

    record: dict[str, Any] = {
        TYPE_KEY: "DOMNode",
        "nodeName": str(node.nodeName),
        "nodeType": int(node.nodeType),
    }
    if record["nodeType"] != ELEMENT_NODE:
        return record

    get_attribute = getattr(node, "getAttribute", None)
    if callable(get_attribute):
        element_id = get_attribute("id")
        class_name = get_attribute("class")
    else:
        element_id = getattr(node, "id", None)
        class_name = getattr(node, "className", None)
    _set_if_present(record, "id", element_id)
    _set_if_present(record, "className", class_name)

    inner_html = getattr(node, "innerHTML", None)
    if inner_html is None and hasattr(node, "childNodes"):
        inner_html = "".join(child.toxml() for child in node.childNodes)
    if inner_html is not None:
        record["innerHTML"] = str(inner_html)
    return record


def _describe_etree_element(element: ET.Element) -> dict[str, Any]:
    if element.tag is ET.Comment:
        return {TYPE_KEY: "DOMNode", "nodeName": "#comment", "nodeType": COMMENT_NODE}
    if element.tag is ET.ProcessingInstruction:
        return {
            TYPE_KEY: "DOMNode",
            "nodeName": "#processing-instruction",
            "nodeType": PROCESSING_INSTRUCTION_NODE,
        }

    record: dict[str, Any] = {
        TYPE_KEY: "DOMNode",
        "nodeName": str(element.tag),
        "nodeType": ELEMENT_NODE,
    }
    _set_if_present(record, "id", element.get("id"))
    _set_if_present(record, "className", element.get("class"))
    # tostring() includes each child's tail text
    record["innerHTML"] = (element.text or "") + "".join(
        ET.tostring(child, encoding="unicode") for child in element
    )
    return record


def _set_if_present(record: dict[str, Any], key: str, value: Any) -> None:
    if value:
        record[key] = str(value)
