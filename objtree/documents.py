"""
Objtree document helpers: serialize to and from XML text and files.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import io
import os
import pathlib
from typing import Any
from xml.etree import ElementTree as ET

# Local ----------------------------------------------------------------------------------------------------------------
from .context import SerializationContext
from .deserializer import Deserializer
from .errors import DeserializationError
from .sentinels import UNSET
from .serializer import Serializer
from .tools import fmt_type

# ElementTree escapes CR in attribute values but leaves it raw in text content
_CR_REFERENCE = "&#13;"


# Methods --------------------------------------------------------------------------------------------------------------

def to_string(obj: Any, context: SerializationContext | None = None, *, declared_type: Any = UNSET) -> str:
    """
    Serialize obj into an XML string.

    Carriage returns inside text are written as character references so that they survive
    the line-end normalization of XML parsers.

    Examples:
        >>> to_string([1, 2, 3], declared_type=list[int])
        '<_Root _Array="3">1,2,3</_Root>'
    """
    root = Serializer(context).serialize(obj, declared_type)
    return ET.tostring(root, encoding="unicode").replace("\r", _CR_REFERENCE)


def from_string(text: str, expected_type: Any = None, context: SerializationContext | None = None) -> Any:
    """
    Deserialize an XML string produced by `to_string`.

    Raises:
        DeserializationError: If text is not well-formed XML or violates the wire format.
    """
    if not isinstance(text, (str, bytes)):
        raise TypeError(f"text must be str or bytes, got {fmt_type(text)}")
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise DeserializationError(f"malformed XML document: {e}") from e
    return Deserializer(context).deserialize(root, expected_type)


def to_file(obj: Any, path: str | os.PathLike[str], context: SerializationContext | None = None, *,
            declared_type: Any = UNSET, indent: bool = False) -> None:
    """
    Serialize obj into an UTF-8 XML file, replacing any existing file.

    Args:
        indent: Pretty-print nested nodes. Whitespace is only added between elements;
            condensed array text is never altered.
    """
    root = Serializer(context).serialize(obj, declared_type)
    tree = ET.ElementTree(root)
    if indent:
        ET.indent(tree)
    buffer = io.BytesIO()
    tree.write(buffer, encoding="utf-8", xml_declaration=True)
    # 0x0D only ever encodes CR in UTF-8
    data = buffer.getvalue().replace(b"\r", _CR_REFERENCE.encode("ascii"))
    pathlib.Path(path).write_bytes(data)


def from_file(path: str | os.PathLike[str], expected_type: Any = None,
              context: SerializationContext | None = None) -> Any:
    """
    Deserialize an XML file written by `to_file`.

    Raises:
        FileNotFoundError: If path does not exist.
        DeserializationError: If the file is not well-formed XML or violates the wire format.
    """
    try:
        tree = ET.parse(os.fspath(path))
    except ET.ParseError as e:
        raise DeserializationError(f"malformed XML document {os.fspath(path)!r}: {e}") from e
    return Deserializer(context).deserialize(tree, expected_type)

