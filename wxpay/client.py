# ============================================================================
# WxPay Gateway Client v1.0.0
# WxPay Client - Caller-Facing Operations
# ============================================================================
#
# Purpose: One method (and one module function) per gateway operation
#
# Operations:
#   - unified_order  (/pay/unifiedorder)
#   - order_query    (/pay/orderquery, response not verified)
#   - close_order    (/pay/closeorder)
#   - refund         (/secapi/pay/refund, client certificate)
#   - refund_query   (/pay/refundquery, response not verified)
#   - micropay       (/pay/micropay)
#   - reverse        (/secapi/pay/reverse, client certificate)
#   - notify         (inbound payment notification)
#
# ============================================================================

import logging
from typing import Dict, Mapping, Optional

from wxpay.client_pay import app_pay, jsapi_pay
from wxpay.config import WxPayCredential
from wxpay.models import (
    CloseOrderResponse,
    MicroPayResponse,
    NotifyResponse,
    OrderQueryResponse,
    RefundQueryResponse,
    RefundResponse,
    ReverseOrderResponse,
    UnifiedOrderResponse,
)
from wxpay.pipeline import (
    CLOSE_ORDER,
    MICROPAY,
    ORDER_QUERY,
    REFUND,
    REFUND_QUERY,
    REVERSE,
    UNIFIED_ORDER,
    OperationPipeline,
)

logger = logging.getLogger(__name__)


class WxPayClient:
    """
    Gateway client bound to one merchant credential.

    Every method raises one of ValidationError, TransportError, ParseError,
    GatewayError or SignatureError on failure. Treat SignatureError as the
    most severe: the response may have been tampered with.

    Example Usage:
        client = WxPayClient(WxPayCredential.from_environment())
        order = client.unified_order({
            "out_trade_no": "1000000000000",
            "body": "test",
            "total_fee": "100",
        })
        print(order.prepay_id)
    """

    def __init__(
        self,
        credential: WxPayCredential,
        pipeline: Optional[OperationPipeline] = None,
    ):
        self.credential = credential
        self.pipeline = pipeline or OperationPipeline()

        logger.info(
            f"[WXPAY-CLI] Client initialized | "
            f"app_id={credential.app_id} | mch_id={credential.mch_id} | "
            f"app_key={credential.get_redacted_key()} | "
            f"mutual_tls={credential.tls_identity is not None}"
        )

    def unified_order(self, params: Mapping[str, str]) -> UnifiedOrderResponse:
        """
        Place an order and obtain a prepay_id.

        Required: out_trade_no, body, total_fee (plus openid for JSAPI,
        product_id for NATIVE). appid, mch_id, nonce_str, trade_type and
        sign are filled in; notify_url and spbill_create_ip default from
        the credential.
        """
        return self.pipeline.execute(UNIFIED_ORDER, self.credential, params)

    def order_query(self, params: Mapping[str, str]) -> OrderQueryResponse:
        """Query an order by out_trade_no or transaction_id."""
        return self.pipeline.execute(ORDER_QUERY, self.credential, params)

    def close_order(self, params: Mapping[str, str]) -> CloseOrderResponse:
        """Close an unpaid order. Required: out_trade_no."""
        return self.pipeline.execute(CLOSE_ORDER, self.credential, params)

    def refund(self, params: Mapping[str, str]) -> RefundResponse:
        """
        Request a refund.

        Required: out_trade_no or transaction_id, out_refund_no, total_fee,
        refund_fee, op_user_id. The gateway expects the client certificate.
        """
        return self.pipeline.execute(REFUND, self.credential, params)

    def refund_query(self, params: Mapping[str, str]) -> RefundQueryResponse:
        """
        Query refund status.

        Needs one of out_refund_no, out_trade_no, transaction_id, refund_id.
        """
        return self.pipeline.execute(REFUND_QUERY, self.credential, params)

    def micropay(self, params: Mapping[str, str]) -> MicroPayResponse:
        """Charge a scanned payment code. Required: out_trade_no, body, total_fee, auth_code."""
        return self.pipeline.execute(MICROPAY, self.credential, params)

    def reverse(self, params: Mapping[str, str]) -> ReverseOrderResponse:
        """Reverse a micropay order by out_trade_no or transaction_id."""
        return self.pipeline.execute(REVERSE, self.credential, params)

    def notify(self, body: bytes) -> NotifyResponse:
        """Verify a payment notification POSTed by the gateway."""
        return self.pipeline.receive(self.credential, body)

    def jsapi_pay(self, prepay_id: str) -> str:
        """Signed JSAPI launch object (JSON) for a prepay_id."""
        return jsapi_pay(self.credential, prepay_id)

    def app_pay(self, prepay_id: str) -> Dict[str, str]:
        """Signed app SDK launch parameters for a prepay_id."""
        return app_pay(self.credential, prepay_id)


# =============================================================================
# Module-Level Functions
# =============================================================================

_default_pipeline = OperationPipeline()


def unified_order(credential: WxPayCredential, params: Mapping[str, str]) -> UnifiedOrderResponse:
    return _default_pipeline.execute(UNIFIED_ORDER, credential, params)


def order_query(credential: WxPayCredential, params: Mapping[str, str]) -> OrderQueryResponse:
    return _default_pipeline.execute(ORDER_QUERY, credential, params)


def close_order(credential: WxPayCredential, params: Mapping[str, str]) -> CloseOrderResponse:
    return _default_pipeline.execute(CLOSE_ORDER, credential, params)


def refund(credential: WxPayCredential, params: Mapping[str, str]) -> RefundResponse:
    return _default_pipeline.execute(REFUND, credential, params)


def refund_query(credential: WxPayCredential, params: Mapping[str, str]) -> RefundQueryResponse:
    return _default_pipeline.execute(REFUND_QUERY, credential, params)


def micropay(credential: WxPayCredential, params: Mapping[str, str]) -> MicroPayResponse:
    return _default_pipeline.execute(MICROPAY, credential, params)


def reverse_order(credential: WxPayCredential, params: Mapping[str, str]) -> ReverseOrderResponse:
    return _default_pipeline.execute(REVERSE, credential, params)


def notify(credential: WxPayCredential, body: bytes) -> NotifyResponse:
    return _default_pipeline.receive(credential, body)


__all__ = [
    "WxPayClient",
    "unified_order",
    "order_query",
    "close_order",
    "refund",
    "refund_query",
    "micropay",
    "reverse_order",
    "notify",
]
