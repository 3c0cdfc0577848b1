# ============================================================================
# WxPay Gateway Client v1.0.0
# Payment Gateway Protocol Layer - WeChat Pay v2 XML API
# ============================================================================
#
# Components:
#   - NonceGenerator: Random anti-replay tokens
#   - CanonicalSigner: Sorted-concatenation MD5 signature
#   - EnvelopeCodec: Flat XML envelope <-> ParameterSet
#   - GatewayTransport: HTTPS POST with optional mutual TLS
#   - OperationPipeline: Table-driven validate/sign/send/parse/verify
#   - WxPayClient: One method per gateway operation
#
# ============================================================================

from wxpay.errors import (
    WxPayErrorCode,
    Severity,
    WxPayError,
    ConfigurationError,
    ValidationError,
    TransportError,
    ParseError,
    GatewayError,
    SignatureError,
)
from wxpay.nonce import NonceGenerator, generate_nonce
from wxpay.signer import SIGN_FIELD, CanonicalSigner, make_sign, verify_sign
from wxpay.models import (
    ResponseRecord,
    UnifiedOrderResponse,
    OrderQueryResponse,
    CloseOrderResponse,
    RefundResponse,
    RefundQueryResponse,
    MicroPayResponse,
    ReverseOrderResponse,
    NotifyResponse,
)
from wxpay.codec import EnvelopeCodec, parse_envelope, map_to_xml
from wxpay.config import TlsIdentity, WxPayCredential
from wxpay.transport import GatewayTransport
from wxpay.pipeline import OperationSpec, OPERATIONS, OperationPipeline
from wxpay.client_pay import jsapi_pay, app_pay, notify_reply
from wxpay.client import (
    WxPayClient,
    unified_order,
    order_query,
    close_order,
    refund,
    refund_query,
    micropay,
    reverse_order,
    notify,
)

__all__ = [
    # Errors
    'WxPayErrorCode',
    'Severity',
    'WxPayError',
    'ConfigurationError',
    'ValidationError',
    'TransportError',
    'ParseError',
    'GatewayError',
    'SignatureError',
    # Nonce
    'NonceGenerator',
    'generate_nonce',
    # Signer
    'SIGN_FIELD',
    'CanonicalSigner',
    'make_sign',
    'verify_sign',
    # Records
    'ResponseRecord',
    'UnifiedOrderResponse',
    'OrderQueryResponse',
    'CloseOrderResponse',
    'RefundResponse',
    'RefundQueryResponse',
    'MicroPayResponse',
    'ReverseOrderResponse',
    'NotifyResponse',
    # Codec
    'EnvelopeCodec',
    'parse_envelope',
    'map_to_xml',
    # Configuration
    'TlsIdentity',
    'WxPayCredential',
    # Transport
    'GatewayTransport',
    # Pipeline
    'OperationSpec',
    'OPERATIONS',
    'OperationPipeline',
    # Client-side helpers
    'jsapi_pay',
    'app_pay',
    'notify_reply',
    # Operations
    'WxPayClient',
    'unified_order',
    'order_query',
    'close_order',
    'refund',
    'refund_query',
    'micropay',
    'reverse_order',
    'notify',
]

# Version tracking
__version__ = '1.0.0'
