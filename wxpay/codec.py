# ============================================================================
# WxPay Gateway Client v1.0.0
# Envelope Codec - Flat XML <-> ParameterSet
# ============================================================================
#
# Purpose: Serializes request parameters and parses response envelopes
#
# Wire Format:
#   <xml><field_a>value</field_a><field_b>value</field_b></xml>
#   One root, one text-only child per non-empty field, no attributes.
#
# Error Codes:
#   - WXPAY-XML-001: Malformed envelope or mandatory field missing
#
# ============================================================================

import logging
from typing import Dict, Mapping, Optional, Type, TypeVar

from lxml import etree

from wxpay.errors import ParseError
from wxpay.models import SUCCESS, ResponseRecord
from wxpay.signer import SIGN_FIELD

logger = logging.getLogger(__name__)

ROOT_ELEMENT = "xml"

# Status, message and signature fields carried by every response
STATUS_FIELD = "return_code"
MESSAGE_FIELD = "return_msg"

R = TypeVar("R", bound=ResponseRecord)


def _make_parser() -> etree.XMLParser:
    # Notifications arrive from the network; never resolve entities or fetch DTDs
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
        remove_blank_text=True,
    )


def parse_envelope(xml_bytes: bytes) -> Dict[str, str]:
    """
    Parse a flat envelope into a field mapping.

    Args:
        xml_bytes: Raw response body

    Returns:
        Element name to text mapping (empty elements map to '')

    Raises:
        ParseError: If the bytes are not a well-formed flat envelope
    """
    if isinstance(xml_bytes, str):
        xml_bytes = xml_bytes.encode('utf-8')
    if not xml_bytes or not xml_bytes.strip():
        raise ParseError("Empty response body")

    try:
        root = etree.fromstring(xml_bytes, parser=_make_parser())
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Malformed XML envelope: {e}") from e

    if root.getroottree().docinfo.doctype:
        raise ParseError("DOCTYPE declarations are not accepted")

    fields: Dict[str, str] = {}
    for child in root:
        if not isinstance(child.tag, str):
            # comments and processing instructions
            continue
        if len(child):
            raise ParseError(f"Nested element inside <{child.tag}> is not a flat envelope")
        fields[etree.QName(child).localname] = child.text or ''
    return fields


class EnvelopeCodec:
    """
    Bidirectional mapping between a ParameterSet and the XML envelope.

    Example Usage:
        codec = EnvelopeCodec()
        body = codec.encode(params)
        record = codec.decode(response_bytes, UnifiedOrderResponse)
        fields = codec.flatten(record)
    """

    def __init__(self, root_element: str = ROOT_ELEMENT):
        self.root_element = root_element

    def encode(self, parameters: Mapping[str, str]) -> bytes:
        """
        Serialize the non-empty entries of ``parameters``.

        Children are emitted in ascending key order so output is stable.
        lxml escapes &, < and > in text content; nothing else is altered.

        Raises:
            ValueError: If a key is not a valid XML element name
        """
        root = etree.Element(self.root_element)
        for name in sorted(parameters):
            value = parameters[name]
            if value is None or value == '':
                continue
            child = etree.SubElement(root, name)
            child.text = str(value)
        return etree.tostring(root, encoding='utf-8')

    def decode(
        self,
        xml_bytes: bytes,
        record_cls: Type[R] = ResponseRecord,
    ) -> R:
        """
        Parse response bytes into a typed record.

        ``return_code`` is always mandatory. A SUCCESS envelope must carry
        ``sign``; any other status must carry ``return_msg``.

        Raises:
            ParseError: Malformed XML or mandatory field missing
        """
        fields = parse_envelope(xml_bytes)

        status = fields.get(STATUS_FIELD, '')
        if not status:
            raise ParseError(f"Response envelope missing mandatory field {STATUS_FIELD}")
        if status == SUCCESS and not fields.get(SIGN_FIELD):
            raise ParseError(f"Response envelope missing mandatory field {SIGN_FIELD}")
        if status != SUCCESS and not fields.get(MESSAGE_FIELD):
            raise ParseError(f"Response envelope missing mandatory field {MESSAGE_FIELD}")

        return record_cls.from_fields(fields)

    def flatten(
        self,
        record: ResponseRecord,
        exclude: Optional[str] = SIGN_FIELD
    ) -> Dict[str, str]:
        """
        Project a record back into a ParameterSet for re-signing.

        Every populated declared field and every extra field is included,
        under the element name the parser read, except ``exclude``.
        """
        flat: Dict[str, str] = {}
        for name in record.wire_fields():
            value = getattr(record, name)
            if value and name != exclude:
                flat[name] = value
        for name, value in record.extra.items():
            if value and name != exclude:
                flat[name] = value
        return flat


_default_codec = EnvelopeCodec()


def map_to_xml(parameters: Mapping[str, str]) -> bytes:
    """Module-level shortcut for EnvelopeCodec().encode()."""
    return _default_codec.encode(parameters)


__all__ = [
    "ROOT_ELEMENT",
    "STATUS_FIELD",
    "MESSAGE_FIELD",
    "EnvelopeCodec",
    "parse_envelope",
    "map_to_xml",
]
