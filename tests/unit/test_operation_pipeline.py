"""
Unit Tests for the Operation Pipeline

Verifies the uniform validate -> sign -> send -> parse -> verify flow:
- Request assembly (defaults, context fields, signature over the merged set)
- Validation failures never reach the transport
- Mutual-TLS operations are sent even without a client certificate
- return_code FAIL -> GatewayError without a signature check
- Bad response signature -> SignatureError, except for order/refund query
- Inbound notifications run decode and verification only
"""

import logging
from typing import Callable, List, Optional

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from wxpay.codec import EnvelopeCodec, parse_envelope
from wxpay.config import TlsIdentity, WxPayCredential
from wxpay.errors import (
    GatewayError,
    ParseError,
    Severity,
    SignatureError,
    ValidationError,
)
from wxpay.models import (
    OrderQueryResponse,
    RefundQueryResponse,
    UnifiedOrderResponse,
    NotifyResponse,
)
from wxpay.nonce import NonceGenerator
from wxpay.pipeline import (
    BASE_URL,
    CLOSE_ORDER,
    MICROPAY,
    NOTIFY,
    OPERATIONS,
    ORDER_QUERY,
    REFUND,
    REFUND_QUERY,
    REVERSE,
    UNIFIED_ORDER,
    OperationPipeline,
)
from wxpay.signer import make_sign


APP_KEY = "KEY"
FIXED_NONCE = "5K8264ILTKCH16CQ2502SI8ZNMTM67VS"


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FixedNonceGenerator(NonceGenerator):
    """Deterministic nonce for exact signature assertions."""

    def generate(self, length: int = 32) -> str:
        return FIXED_NONCE[:length]


class RecordingTransport:
    """Captures outbound calls and replies with a canned body."""

    def __init__(self, responder: Callable[[str, bytes], bytes]):
        self.responder = responder
        self.calls: List[dict] = []

    def post(self, url, xml_body, tls_identity=None, timeout=6.0, correlation_id=None):
        self.calls.append({
            'url': url,
            'body': xml_body,
            'tls_identity': tls_identity,
            'timeout': timeout,
        })
        return self.responder(url, xml_body)


def signed_envelope(fields: dict, key: str = APP_KEY, sign: Optional[str] = None) -> bytes:
    """Encode a response envelope carrying a (by default valid) signature."""
    body = dict(fields)
    body['sign'] = sign if sign is not None else make_sign(fields, key)
    return EnvelopeCodec().encode(body)


SUCCESS_FIELDS = {
    "return_code": "SUCCESS",
    "return_msg": "OK",
    "appid": "wx8a92954451ec0dfa",
    "mch_id": "1317382401",
    "nonce_str": "IITRi8Iabbblz1Jc",
    "result_code": "SUCCESS",
    "prepay_id": "wx201411101639507cbf6ffd8b0779950874",
    "trade_type": "APP",
}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def credential() -> WxPayCredential:
    return WxPayCredential(
        app_id="wx8a92954451ec0dfa",
        mch_id="1317382401",
        app_key=APP_KEY,
        trade_type="APP",
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport(lambda url, body: signed_envelope(SUCCESS_FIELDS))


@pytest.fixture
def pipeline(transport) -> OperationPipeline:
    return OperationPipeline(transport=transport, nonce_generator=FixedNonceGenerator())


def sent_fields(transport: RecordingTransport, index: int = -1) -> dict:
    return parse_envelope(transport.calls[index]['body'])


# =============================================================================
# TEST: OPERATION TABLE
# =============================================================================

class TestOperationTable:
    """Descriptor data for the eight operations."""

    def test_eight_operations(self) -> None:
        assert set(OPERATIONS) == {
            "unified_order", "order_query", "close_order", "refund",
            "refund_query", "micropay", "reverse", "notify",
        }

    @pytest.mark.parametrize("spec,path", [
        (UNIFIED_ORDER, "/pay/unifiedorder"),
        (ORDER_QUERY, "/pay/orderquery"),
        (CLOSE_ORDER, "/pay/closeorder"),
        (REFUND, "/secapi/pay/refund"),
        (REFUND_QUERY, "/pay/refundquery"),
        (MICROPAY, "/pay/micropay"),
        (REVERSE, "/secapi/pay/reverse"),
    ])
    def test_endpoints(self, spec, path: str) -> None:
        assert spec.url() == f"{BASE_URL}{path}"

    def test_notify_has_no_endpoint(self) -> None:
        with pytest.raises(ValueError):
            NOTIFY.url()

    def test_only_queries_skip_verification(self) -> None:
        unverified = {name for name, spec in OPERATIONS.items() if not spec.verify_response}
        assert unverified == {"order_query", "refund_query"}

    def test_client_cert_operations(self) -> None:
        gated = {name for name, spec in OPERATIONS.items() if spec.requires_client_cert}
        assert gated == {"refund", "reverse"}


# =============================================================================
# TEST: REQUEST ASSEMBLY
# =============================================================================

class TestRequestAssembly:
    """Steps 2-5: defaults, context fields, signing, encoding."""

    def test_unified_order_signature_scenario(self, pipeline, transport, credential) -> None:
        pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1000000000000",
            "body": "test",
            "total_fee": "100",
        })

        sent = sent_fields(transport)
        assert sent == {
            "appid": "wx8a92954451ec0dfa",
            "body": "test",
            "mch_id": "1317382401",
            "nonce_str": FIXED_NONCE,
            "out_trade_no": "1000000000000",
            "total_fee": "100",
            "trade_type": "APP",
            "sign": "81564CEF3EC56622749CE6064D23C42D",
        }
        assert transport.calls[0]['url'] == f"{BASE_URL}/pay/unifiedorder"

    def test_sent_sign_covers_other_fields(self, pipeline, transport, credential) -> None:
        pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1", "attach": "a&b=c"})
        sent = sent_fields(transport)
        assert sent['sign'] == make_sign(sent, APP_KEY)

    def test_credential_defaults_applied(self, pipeline, transport) -> None:
        credential = WxPayCredential(
            "wx1", "m1", APP_KEY,
            notify_url="https://shop.example/notify",
            spbill_create_ip="203.0.113.7",
        )
        pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1",
        })

        sent = sent_fields(transport)
        assert sent['notify_url'] == "https://shop.example/notify"
        assert sent['spbill_create_ip'] == "203.0.113.7"

    def test_caller_values_win_over_defaults(self, pipeline, transport) -> None:
        credential = WxPayCredential(
            "wx1", "m1", APP_KEY,
            notify_url="https://shop.example/notify",
            spbill_create_ip="203.0.113.7",
        )
        pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1",
            "notify_url": "https://other.example/cb",
            "spbill_create_ip": "198.51.100.1",
        })

        sent = sent_fields(transport)
        assert sent['notify_url'] == "https://other.example/cb"
        assert sent['spbill_create_ip'] == "198.51.100.1"

    def test_micropay_defaults_ip_but_not_notify_url(self, pipeline, transport) -> None:
        credential = WxPayCredential(
            "wx1", "m1", APP_KEY, trade_type="MICROPAY",
            notify_url="https://shop.example/notify",
            spbill_create_ip="203.0.113.7",
        )
        pipeline.execute(MICROPAY, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1", "auth_code": "134567",
        })

        sent = sent_fields(transport)
        assert sent['spbill_create_ip'] == "203.0.113.7"
        assert sent['trade_type'] == "MICROPAY"
        assert "notify_url" not in sent

    @pytest.mark.parametrize("spec,params", [
        (ORDER_QUERY, {"out_trade_no": "1"}),
        (CLOSE_ORDER, {"out_trade_no": "1"}),
        (REVERSE, {"transaction_id": "4200"}),
    ])
    def test_trade_type_only_where_used(self, pipeline, transport, credential, spec, params) -> None:
        pipeline.execute(spec, credential, params)
        assert "trade_type" not in sent_fields(transport)

    def test_context_fields_override_caller(self, pipeline, transport, credential) -> None:
        pipeline.execute(CLOSE_ORDER, credential, {
            "out_trade_no": "1",
            "appid": "wx-forged",
            "nonce_str": "reused",
            "sign": "FORGED",
        })

        sent = sent_fields(transport)
        assert sent['appid'] == credential.app_id
        assert sent['nonce_str'] == FIXED_NONCE
        assert sent['sign'] == make_sign(sent, APP_KEY)

    def test_caller_params_not_mutated(self, pipeline, credential) -> None:
        params = {"out_trade_no": "1", "body": "b", "total_fee": "1"}
        snapshot = dict(params)
        pipeline.execute(UNIFIED_ORDER, credential, params)
        assert params == snapshot

    def test_fresh_nonce_each_call(self, transport, credential) -> None:
        pipeline = OperationPipeline(transport=transport)
        pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})
        pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

        first, second = sent_fields(transport, 0), sent_fields(transport, 1)
        assert len(first['nonce_str']) == 32
        assert first['nonce_str'] != second['nonce_str']

    def test_credential_deadline_passed_to_transport(self, pipeline, transport) -> None:
        credential = WxPayCredential("wx1", "m1", APP_KEY, timeout=2.5)
        pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})
        assert transport.calls[0]['timeout'] == 2.5


# =============================================================================
# TEST: VALIDATION
# =============================================================================

class TestValidation:
    """Step 1: missing caller fields never reach the network."""

    @pytest.mark.parametrize("spec,params,field", [
        (UNIFIED_ORDER, {"body": "b", "total_fee": "1"}, "out_trade_no"),
        (UNIFIED_ORDER, {"out_trade_no": "1", "total_fee": "1"}, "body"),
        (UNIFIED_ORDER, {"out_trade_no": "1", "body": "b", "total_fee": ""}, "total_fee"),
        (ORDER_QUERY, {}, "out_trade_no"),
        (ORDER_QUERY, {"out_trade_no": "", "transaction_id": ""}, "out_trade_no"),
        (CLOSE_ORDER, {}, "out_trade_no"),
        (REFUND, {"out_refund_no": "r", "total_fee": "1", "refund_fee": "1",
                  "op_user_id": "op"}, "out_trade_no"),
        (REFUND, {"transaction_id": "t", "total_fee": "1", "refund_fee": "1",
                  "op_user_id": "op"}, "out_refund_no"),
        (REFUND, {"transaction_id": "t", "out_refund_no": "r", "total_fee": "1",
                  "refund_fee": "1"}, "op_user_id"),
        (REFUND_QUERY, {}, "out_refund_no"),
        (MICROPAY, {"out_trade_no": "1", "body": "b", "total_fee": "1"}, "auth_code"),
        (REVERSE, {}, "out_trade_no"),
    ])
    def test_missing_field_raises_before_network(
        self, pipeline, transport, credential, spec, params, field
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            pipeline.execute(spec, credential, params)

        assert exc_info.value.field == field
        assert field in str(exc_info.value)
        assert transport.calls == []

    def test_order_query_without_identifiers(self, pipeline, transport, credential) -> None:
        with pytest.raises(ValidationError):
            pipeline.execute(ORDER_QUERY, credential, {"attach": "x"})
        assert len(transport.calls) == 0

    @pytest.mark.parametrize("field", ["out_refund_no", "out_trade_no", "transaction_id", "refund_id"])
    def test_refund_query_accepts_any_identifier(self, pipeline, transport, credential, field) -> None:
        pipeline.execute(REFUND_QUERY, credential, {field: "x"})
        assert len(transport.calls) == 1

    def test_jsapi_requires_openid(self, pipeline, transport) -> None:
        credential = WxPayCredential("wx1", "m1", APP_KEY, trade_type="JSAPI")
        with pytest.raises(ValidationError) as exc_info:
            pipeline.execute(UNIFIED_ORDER, credential, {
                "out_trade_no": "1", "body": "b", "total_fee": "1",
            })
        assert exc_info.value.field == "openid"
        assert transport.calls == []

    def test_native_requires_product_id(self, pipeline, transport) -> None:
        credential = WxPayCredential("wx1", "m1", APP_KEY, trade_type="NATIVE")
        with pytest.raises(ValidationError) as exc_info:
            pipeline.execute(UNIFIED_ORDER, credential, {
                "out_trade_no": "1", "body": "b", "total_fee": "1",
            })
        assert exc_info.value.field == "product_id"

    def test_openid_not_required_for_app(self, pipeline, transport, credential) -> None:
        pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1",
        })
        assert len(transport.calls) == 1


# =============================================================================
# TEST: MUTUAL TLS
# =============================================================================

class TestMutualTls:
    """Certificate presence is enforced by the gateway, not locally."""

    def test_refund_without_identity_still_sent(self, pipeline, transport, credential) -> None:
        pipeline.execute(REFUND, credential, {
            "out_trade_no": "1", "out_refund_no": "r1", "total_fee": "100",
            "refund_fee": "100", "op_user_id": "1317382401",
        })

        assert len(transport.calls) == 1
        assert transport.calls[0]['tls_identity'] is None
        assert transport.calls[0]['url'] == f"{BASE_URL}/secapi/pay/refund"

    def test_identity_passed_to_transport(self, pipeline, transport) -> None:
        identity = TlsIdentity("/c.pem", "/k.pem")
        credential = WxPayCredential("wx1", "m1", APP_KEY, tls_identity=identity)
        pipeline.execute(REVERSE, credential, {"out_trade_no": "1"})
        assert transport.calls[0]['tls_identity'] is identity


# =============================================================================
# TEST: RESPONSE HANDLING
# =============================================================================

class TestResponseHandling:
    """Steps 6-8."""

    def test_verified_record_returned(self, pipeline, credential) -> None:
        record = pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1",
        })

        assert isinstance(record, UnifiedOrderResponse)
        assert record.prepay_id == "wx201411101639507cbf6ffd8b0779950874"

    def test_bad_signature_raises_signature_error(self, credential) -> None:
        transport = RecordingTransport(
            lambda url, body: signed_envelope(SUCCESS_FIELDS, sign="0" * 32)
        )
        pipeline = OperationPipeline(transport=transport)

        with pytest.raises(SignatureError) as exc_info:
            pipeline.execute(UNIFIED_ORDER, credential, {
                "out_trade_no": "1", "body": "b", "total_fee": "1",
            })

        assert exc_info.value.record.return_code == "SUCCESS"
        assert exc_info.value.error_code == "WXPAY-SIG-001"

    def test_signature_with_wrong_secret_rejected(self, credential) -> None:
        transport = RecordingTransport(
            lambda url, body: signed_envelope(SUCCESS_FIELDS, key="OTHER")
        )
        pipeline = OperationPipeline(transport=transport)

        with pytest.raises(SignatureError):
            pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

    def test_tampered_field_rejected(self, credential) -> None:
        def responder(url, body):
            envelope = parse_envelope(signed_envelope(SUCCESS_FIELDS))
            envelope['prepay_id'] = "attacker-prepay"
            return EnvelopeCodec().encode(envelope)

        pipeline = OperationPipeline(transport=RecordingTransport(responder))
        with pytest.raises(SignatureError):
            pipeline.execute(UNIFIED_ORDER, credential, {
                "out_trade_no": "1", "body": "b", "total_fee": "1",
            })

    def test_undeclared_fields_covered_by_verification(self, credential) -> None:
        fields = dict(SUCCESS_FIELDS, sub_mch_id="1900000109", new_upstream_field="x")
        pipeline = OperationPipeline(
            transport=RecordingTransport(lambda url, body: signed_envelope(fields))
        )
        record = pipeline.execute(UNIFIED_ORDER, credential, {
            "out_trade_no": "1", "body": "b", "total_fee": "1",
        })
        assert record.extra["new_upstream_field"] == "x"

    @pytest.mark.parametrize("spec,params,record_cls", [
        (ORDER_QUERY, {"out_trade_no": "1"}, OrderQueryResponse),
        (REFUND_QUERY, {"out_trade_no": "1"}, RefundQueryResponse),
    ])
    def test_queries_do_not_verify(self, credential, spec, params, record_cls) -> None:
        transport = RecordingTransport(
            lambda url, body: signed_envelope(SUCCESS_FIELDS, sign="0" * 32)
        )
        pipeline = OperationPipeline(transport=transport)

        record = pipeline.execute(spec, credential, params)

        assert isinstance(record, record_cls)
        assert record.sign == "0" * 32

    def test_gateway_failure_raises_gateway_error(self, credential) -> None:
        transport = RecordingTransport(lambda url, body: (
            b"<xml><return_code>FAIL</return_code>"
            b"<return_msg>mch_id error</return_msg></xml>"
        ))
        pipeline = OperationPipeline(transport=transport)

        with pytest.raises(GatewayError) as exc_info:
            pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

        assert exc_info.value.return_msg == "mch_id error"
        assert exc_info.value.record.return_code == "FAIL"

    def test_gateway_failure_skips_signature_check(self, credential) -> None:
        # A FAIL envelope with a bogus sign is still a GatewayError
        transport = RecordingTransport(lambda url, body: signed_envelope(
            {"return_code": "FAIL", "return_msg": "SYSTEMERROR"}, sign="0" * 32
        ))
        pipeline = OperationPipeline(transport=transport)

        with pytest.raises(GatewayError):
            pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

    def test_business_failure_is_returned(self, credential) -> None:
        fields = dict(SUCCESS_FIELDS, result_code="FAIL", err_code="ORDERPAID",
                      err_code_des="order paid")
        pipeline = OperationPipeline(
            transport=RecordingTransport(lambda url, body: signed_envelope(fields))
        )
        record = pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

        assert record.is_success is True
        assert record.is_business_success is False
        assert record.err_code == "ORDERPAID"

    def test_garbage_response_raises_parse_error(self, credential) -> None:
        pipeline = OperationPipeline(
            transport=RecordingTransport(lambda url, body: b"<html>502 Bad Gateway")
        )
        with pytest.raises(ParseError):
            pipeline.execute(CLOSE_ORDER, credential, {"out_trade_no": "1"})

    def test_signature_error_outranks_gateway_error(self) -> None:
        assert SignatureError.severity > GatewayError.severity
        assert SignatureError.severity == Severity.CRITICAL

    def test_severity_levels_are_ordered_enum(self) -> None:
        assert isinstance(SignatureError.severity, Severity)
        assert Severity.WARNING < Severity.ERROR < Severity.CRITICAL
        assert ValidationError.severity is Severity.ERROR
        assert int(Severity.CRITICAL) == logging.CRITICAL


# =============================================================================
# TEST: INBOUND NOTIFICATION
# =============================================================================

class TestReceive:
    """Notification intake: decode and verify only."""

    NOTIFY_FIELDS = {
        "return_code": "SUCCESS",
        "appid": "wx8a92954451ec0dfa",
        "mch_id": "1317382401",
        "nonce_str": "5d2b6c2a8db53831f7eda20af46e531c",
        "result_code": "SUCCESS",
        "openid": "oUpF8uMEb4qRXf22hE3X68TekukE",
        "trade_type": "JSAPI",
        "bank_type": "CFT",
        "total_fee": "1",
        "cash_fee": "1",
        "transaction_id": "1004400740201409030005092168",
        "out_trade_no": "1409811653",
        "time_end": "20140903131540",
        "coupon_id_0": "10000",
    }

    def test_valid_notification(self, pipeline, transport, credential) -> None:
        record = pipeline.receive(credential, signed_envelope(self.NOTIFY_FIELDS))

        assert isinstance(record, NotifyResponse)
        assert record.out_trade_no == "1409811653"
        assert record.extra["coupon_id_0"] == "10000"
        assert transport.calls == []

    def test_forged_notification_rejected(self, pipeline, credential) -> None:
        body = signed_envelope(self.NOTIFY_FIELDS, key="attacker-key")
        with pytest.raises(SignatureError):
            pipeline.receive(credential, body)

    def test_failed_notification(self, pipeline, credential) -> None:
        body = b"<xml><return_code>FAIL</return_code><return_msg>bad</return_msg></xml>"
        with pytest.raises(GatewayError):
            pipeline.receive(credential, body)

    def test_malformed_notification(self, pipeline, credential) -> None:
        with pytest.raises(ParseError):
            pipeline.receive(credential, b"<xml>")
