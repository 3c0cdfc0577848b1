# ============================================================================
# WxPay Gateway Client v1.0.0
# Operation Pipeline - Validate, Sign, Send, Parse, Verify
# ============================================================================
#
# Purpose: Runs every gateway operation through one uniform pipeline
#
# Pipeline (outbound operations):
#   1. Required-field validation            -> ValidationError
#   2. notify_url / spbill_create_ip defaults from the credential
#   3. Merge appid, mch_id, trade_type (where used), fresh nonce_str
#   4. sign = CanonicalSigner(merged, app_key)
#   5. Encode and POST                      -> TransportError
#   6. Decode; return_code != SUCCESS       -> ParseError / GatewayError
#   7. Verify response signature if the op requires it -> SignatureError
#
# Inbound notifications run steps 6-7 only.
#
# ============================================================================

import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Type

from wxpay.codec import EnvelopeCodec
from wxpay.config import WxPayCredential
from wxpay.errors import (
    GatewayError,
    ParseError,
    SignatureError,
    ValidationError,
    WxPayErrorCode,
)
from wxpay.models import (
    SUCCESS,
    CloseOrderResponse,
    MicroPayResponse,
    NotifyResponse,
    OrderQueryResponse,
    RefundQueryResponse,
    RefundResponse,
    ResponseRecord,
    ReverseOrderResponse,
    UnifiedOrderResponse,
)
from wxpay.nonce import DEFAULT_NONCE_LENGTH, NonceGenerator
from wxpay.signer import SIGN_FIELD, CanonicalSigner
from wxpay.transport import GatewayTransport

logger = logging.getLogger(__name__)

BASE_URL = "https://api.mch.weixin.qq.com"


# =============================================================================
# Operation Descriptors
# =============================================================================

@dataclass(frozen=True)
class OperationSpec:
    """
    Per-operation parameters of the pipeline.

    ``path`` is None for inbound-only operations.
    """

    name: str
    path: Optional[str]
    response_cls: Type[ResponseRecord]
    required: Tuple[str, ...] = ()
    one_of: Tuple[str, ...] = ()
    # (trade_type, field) pairs: field becomes required for that trade_type
    conditional_required: Tuple[Tuple[str, str], ...] = ()
    uses_trade_type: bool = False
    default_notify_url: bool = False
    default_client_ip: bool = False
    verify_response: bool = True
    requires_client_cert: bool = False

    def url(self, base_url: str = BASE_URL) -> str:
        if self.path is None:
            raise ValueError(f"Operation {self.name} has no outbound endpoint")
        return f"{base_url}{self.path}"


UNIFIED_ORDER = OperationSpec(
    name="unified_order",
    path="/pay/unifiedorder",
    response_cls=UnifiedOrderResponse,
    required=("out_trade_no", "body", "total_fee"),
    conditional_required=(("JSAPI", "openid"), ("NATIVE", "product_id")),
    uses_trade_type=True,
    default_notify_url=True,
    default_client_ip=True,
)

ORDER_QUERY = OperationSpec(
    name="order_query",
    path="/pay/orderquery",
    response_cls=OrderQueryResponse,
    one_of=("out_trade_no", "transaction_id"),
    verify_response=False,
)

CLOSE_ORDER = OperationSpec(
    name="close_order",
    path="/pay/closeorder",
    response_cls=CloseOrderResponse,
    required=("out_trade_no",),
)

REFUND = OperationSpec(
    name="refund",
    path="/secapi/pay/refund",
    response_cls=RefundResponse,
    one_of=("out_trade_no", "transaction_id"),
    required=("out_refund_no", "total_fee", "refund_fee", "op_user_id"),
    requires_client_cert=True,
)

REFUND_QUERY = OperationSpec(
    name="refund_query",
    path="/pay/refundquery",
    response_cls=RefundQueryResponse,
    one_of=("out_refund_no", "out_trade_no", "transaction_id", "refund_id"),
    verify_response=False,
)

MICROPAY = OperationSpec(
    name="micropay",
    path="/pay/micropay",
    response_cls=MicroPayResponse,
    required=("out_trade_no", "body", "total_fee", "auth_code"),
    uses_trade_type=True,
    default_client_ip=True,
)

REVERSE = OperationSpec(
    name="reverse",
    path="/secapi/pay/reverse",
    response_cls=ReverseOrderResponse,
    one_of=("out_trade_no", "transaction_id"),
    requires_client_cert=True,
)

NOTIFY = OperationSpec(
    name="notify",
    path=None,
    response_cls=NotifyResponse,
)

OPERATIONS: Mapping[str, OperationSpec] = MappingProxyType({
    spec.name: spec
    for spec in (
        UNIFIED_ORDER,
        ORDER_QUERY,
        CLOSE_ORDER,
        REFUND,
        REFUND_QUERY,
        MICROPAY,
        REVERSE,
        NOTIFY,
    )
})


# =============================================================================
# Pipeline
# =============================================================================

class OperationPipeline:
    """
    Orchestrates Signer -> Codec -> Transport -> Codec -> Signer.

    Holds no per-call state; concurrent calls on one instance are safe.

    Example Usage:
        pipeline = OperationPipeline()
        record = pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1000000000000",
            "body": "test",
            "total_fee": "100",
        })
    """

    def __init__(
        self,
        transport: Optional[GatewayTransport] = None,
        signer: Optional[CanonicalSigner] = None,
        codec: Optional[EnvelopeCodec] = None,
        nonce_generator: Optional[NonceGenerator] = None,
        base_url: str = BASE_URL,
    ):
        self.transport = transport or GatewayTransport()
        self.signer = signer or CanonicalSigner()
        self.codec = codec or EnvelopeCodec()
        self.nonce_generator = nonce_generator or NonceGenerator()
        self.base_url = base_url

    # ------------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------------

    def validate(
        self,
        spec: OperationSpec,
        credential: WxPayCredential,
        params: Mapping[str, str]
    ) -> None:
        """
        Presence checks on the caller's fields.

        Raises:
            ValidationError: Naming the first missing field
        """
        if spec.one_of and not any(params.get(name) for name in spec.one_of):
            raise ValidationError(
                f"{spec.name}: at least one of {', '.join(spec.one_of)} is required",
                field=spec.one_of[0],
            )
        for name in spec.required:
            if not params.get(name):
                raise ValidationError(
                    f"{spec.name}: missing required field {name}",
                    field=name,
                )
        conditional = dict(spec.conditional_required).get(credential.trade_type)
        if conditional and not params.get(conditional):
            raise ValidationError(
                f"{spec.name}: {conditional} is required when trade_type is "
                f"{credential.trade_type}",
                field=conditional,
            )

    def build_request(
        self,
        spec: OperationSpec,
        credential: WxPayCredential,
        params: Mapping[str, str]
    ) -> Dict[str, str]:
        """
        Validate, default, merge context fields and sign.

        Returns:
            A new ParameterSet including the computed sign field
        """
        self.validate(spec, credential, params)

        request: Dict[str, str] = {
            name: '' if value is None else str(value)
            for name, value in params.items()
        }

        if spec.default_notify_url and not request.get('notify_url'):
            request['notify_url'] = credential.notify_url
        if spec.default_client_ip and not request.get('spbill_create_ip'):
            request['spbill_create_ip'] = credential.spbill_create_ip

        request['appid'] = credential.app_id
        request['mch_id'] = credential.mch_id
        if spec.uses_trade_type:
            request['trade_type'] = credential.trade_type
        request['nonce_str'] = self.nonce_generator.generate(DEFAULT_NONCE_LENGTH)

        request.pop(SIGN_FIELD, None)
        request[SIGN_FIELD] = self.signer.sign(request, credential.app_key)
        return request

    def execute(
        self,
        spec: OperationSpec,
        credential: WxPayCredential,
        params: Mapping[str, str],
        correlation_id: Optional[str] = None,
    ) -> ResponseRecord:
        """
        Run one outbound operation end to end.

        Args:
            spec: Operation descriptor
            credential: Merchant credential
            params: Caller fields (not modified)
            correlation_id: Audit trail identifier (generated when omitted)

        Returns:
            Verified record, or an unverified one for order/refund query

        Raises:
            ValidationError, TransportError, ParseError, GatewayError,
            SignatureError
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        try:
            request = self.build_request(spec, credential, params)
        except ValidationError as e:
            logger.warning(
                f"[{e.error_code}] Validation failed | "
                f"operation={spec.name} | field={e.field} | "
                f"correlation_id={correlation_id}"
            )
            raise

        if spec.requires_client_cert and credential.tls_identity is None:
            # The gateway enforces the certificate; the call still goes out
            logger.warning(
                f"[WXPAY-PIPE] No client certificate configured | "
                f"operation={spec.name} | correlation_id={correlation_id}"
            )

        logger.debug(
            f"[WXPAY-PIPE] Request signed | "
            f"operation={spec.name} | fields={len(request)} | "
            f"sign=[REDACTED] | correlation_id={correlation_id}"
        )

        body = self.codec.encode(request)
        raw = self.transport.post(
            spec.url(self.base_url),
            body,
            credential.tls_identity,
            credential.timeout,
            correlation_id=correlation_id,
        )
        record = self._accept(spec, credential, raw, correlation_id)

        logger.info(
            f"[WXPAY-PIPE] Operation complete | "
            f"operation={spec.name} | result_code={record.result_code or 'N/A'} | "
            f"verified={spec.verify_response} | correlation_id={correlation_id}"
        )
        return record

    # ------------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------------

    def receive(
        self,
        credential: WxPayCredential,
        body: bytes,
        spec: OperationSpec = NOTIFY,
        correlation_id: Optional[str] = None,
    ) -> ResponseRecord:
        """
        Accept an envelope pushed by the gateway (payment notification).

        Runs the decode and verification steps only.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        record = self._accept(spec, credential, body, correlation_id)
        logger.info(
            f"[WXPAY-PIPE] Notification accepted | "
            f"out_trade_no={record.get('out_trade_no') or 'N/A'} | "
            f"correlation_id={correlation_id}"
        )
        return record

    # ------------------------------------------------------------------------
    # Shared response handling
    # ------------------------------------------------------------------------

    def verify(self, record: ResponseRecord, credential: WxPayCredential) -> bool:
        """Recompute the record's signature and compare with the carried one."""
        flat = self.codec.flatten(record)
        return self.signer.verify(flat, credential.app_key, record.sign)

    def _accept(
        self,
        spec: OperationSpec,
        credential: WxPayCredential,
        raw: bytes,
        correlation_id: str,
    ) -> ResponseRecord:
        try:
            record = self.codec.decode(raw, spec.response_cls)
        except ParseError as e:
            logger.error(
                f"[{e.error_code}] Response parse failed | "
                f"operation={spec.name} | error={e.message} | "
                f"correlation_id={correlation_id}"
            )
            raise

        if record.return_code != SUCCESS:
            logger.warning(
                f"[{WxPayErrorCode.GATEWAY_REJECTED}] Gateway rejected request | "
                f"operation={spec.name} | return_code={record.return_code} | "
                f"return_msg={record.return_msg} | correlation_id={correlation_id}"
            )
            raise GatewayError(record.return_msg, record=record)

        if spec.verify_response and not self.verify(record, credential):
            logger.critical(
                f"[{WxPayErrorCode.SIGNATURE_MISMATCH}] Response signature mismatch | "
                f"operation={spec.name} | sign=[REDACTED] | "
                f"correlation_id={correlation_id}"
            )
            raise SignatureError(
                f"{spec.name}: response signature does not verify",
                record=record,
            )

        return record


__all__ = [
    "BASE_URL",
    "OperationSpec",
    "OPERATIONS",
    "UNIFIED_ORDER",
    "ORDER_QUERY",
    "CLOSE_ORDER",
    "REFUND",
    "REFUND_QUERY",
    "MICROPAY",
    "REVERSE",
    "NOTIFY",
    "OperationPipeline",
]
