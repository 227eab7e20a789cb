"""Editor documents (ProseMirror-style JSON) as stored in comment bodies."""

from __future__ import annotations

from typing import Any

# node types rendered as their own line in plain text
_BLOCK_NODES = {"paragraph", "heading", "blockquote", "codeBlock", "listItem"}


def comment_text(content: Any) -> str:
    """Plain text of an editor document (read-only comment body)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(comment_text(c) for c in content)
    if not isinstance(content, dict):
        return str(content)
    if content.get("type") == "text":
        return content.get("text", "")
    if content.get("type") == "hardBreak":
        return "\n"
    blocks = []
    inline = ""
    for child in content.get("content", []):
        text = comment_text(child)
        if isinstance(child, dict) and child.get("type") in _BLOCK_NODES:
            if inline:
                blocks.append(inline)
                inline = ""
            blocks.append(text)
        else:
            inline += text
    if inline:
        blocks.append(inline)
    return "\n".join(blocks)


def text_to_doc(text: str) -> dict:
    """Wrap plain text as an editor document, one paragraph per line."""
    return {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": line}]}
            if line
            else {"type": "paragraph"}
            for line in text.split("\n")
        ],
    }


def is_empty_content(content: Any) -> bool:
    """True for missing content and for documents without any text."""
    if content is None or content == "" or content == {}:
        return True
    return not comment_text(content).strip()
