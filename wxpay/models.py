# ============================================================================
# WxPay Gateway Client v1.0.0
# Response Records - Declared Envelope Shapes
# ============================================================================
#
# Purpose: Immutable, typed views of decoded response envelopes
#
# Every record declares its wire fields as dataclass fields whose names are
# the XML element names. Elements a shape does not declare are kept verbatim
# in ``extra`` so that signature verification covers the whole envelope.
#
# ============================================================================

import re
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

SUCCESS = "SUCCESS"

# refund_fee_0, coupon_refund_fee_0_1
_INDEXED_FIELD = re.compile(r'^(?P<name>[A-Za-z_]+?)_(?P<index>\d+)(?:_(?P<sub>\d+))?$')


@dataclass(frozen=True)
class ResponseRecord:
    """
    Fields common to every gateway response.

    ``return_code`` is the communication status; ``result_code`` is the
    business status and is only meaningful when return_code is SUCCESS.
    """

    return_code: str = ''
    return_msg: str = ''
    appid: str = ''
    mch_id: str = ''
    device_info: str = ''
    nonce_str: str = ''
    sign: str = ''
    result_code: str = ''
    err_code: str = ''
    err_code_des: str = ''
    extra: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'extra', MappingProxyType(dict(self.extra)))

    @classmethod
    def wire_fields(cls) -> Tuple[str, ...]:
        """Declared XML element names for this shape, in declaration order."""
        return tuple(f.name for f in fields(cls) if f.name != 'extra')

    @classmethod
    def from_fields(cls, values: Mapping[str, str]) -> "ResponseRecord":
        """
        Build a record from a flat element mapping.

        Declared names populate attributes; everything else lands in extra.
        """
        declared = cls.wire_fields()
        known = {name: values[name] for name in declared if name in values}
        extra = {name: value for name, value in values.items() if name not in declared}
        return cls(extra=extra, **known)

    def get(self, name: str, default: str = '') -> str:
        """Look up a wire field by name, declared or extra."""
        if name in self.wire_fields():
            return getattr(self, name) or default
        return self.extra.get(name, default)

    @property
    def is_success(self) -> bool:
        """True when the communication status is SUCCESS."""
        return self.return_code == SUCCESS

    @property
    def is_business_success(self) -> bool:
        """True when both communication and business status are SUCCESS."""
        return self.is_success and self.result_code == SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """All populated wire fields, including sign and extras."""
        result = {
            name: getattr(self, name)
            for name in self.wire_fields()
            if getattr(self, name)
        }
        result.update({k: v for k, v in self.extra.items() if v})
        return result


@dataclass(frozen=True)
class UnifiedOrderResponse(ResponseRecord):
    """Result of /pay/unifiedorder."""
    trade_type: str = ''
    prepay_id: str = ''
    code_url: str = ''
    mweb_url: str = ''


@dataclass(frozen=True)
class OrderQueryResponse(ResponseRecord):
    """Result of /pay/orderquery."""
    openid: str = ''
    is_subscribe: str = ''
    trade_type: str = ''
    trade_state: str = ''
    bank_type: str = ''
    total_fee: str = ''
    settlement_total_fee: str = ''
    fee_type: str = ''
    cash_fee: str = ''
    cash_fee_type: str = ''
    coupon_fee: str = ''
    coupon_count: str = ''
    transaction_id: str = ''
    out_trade_no: str = ''
    attach: str = ''
    time_end: str = ''
    trade_state_desc: str = ''


@dataclass(frozen=True)
class CloseOrderResponse(ResponseRecord):
    """Result of /pay/closeorder."""
    result_msg: str = ''


@dataclass(frozen=True)
class RefundResponse(ResponseRecord):
    """Result of /secapi/pay/refund."""
    transaction_id: str = ''
    out_trade_no: str = ''
    out_refund_no: str = ''
    refund_id: str = ''
    refund_channel: str = ''
    refund_fee: str = ''
    settlement_refund_fee: str = ''
    total_fee: str = ''
    settlement_total_fee: str = ''
    fee_type: str = ''
    cash_fee: str = ''
    cash_fee_type: str = ''
    cash_refund_fee: str = ''
    coupon_refund_fee: str = ''
    coupon_refund_count: str = ''


@dataclass(frozen=True)
class RefundQueryResponse(ResponseRecord):
    """
    Result of /pay/refundquery.

    Per-refund fields are indexed (``out_refund_no_0``, ``refund_fee_0``,
    ``refund_status_0`` ...) and live in ``extra``; use ``refunds()``.
    """

    transaction_id: str = ''
    out_trade_no: str = ''
    total_fee: str = ''
    settlement_total_fee: str = ''
    fee_type: str = ''
    cash_fee: str = ''
    refund_count: str = ''

    def refunds(self) -> Tuple[Dict[str, str], ...]:
        """Group the indexed refund fields, one dict per refund."""
        try:
            count = int(self.refund_count or 0)
        except ValueError:
            count = 0
        grouped: Tuple[Dict[str, str], ...] = tuple({} for _ in range(count))
        for name, value in self.extra.items():
            match = _INDEXED_FIELD.match(name)
            if match is None:
                continue
            index = int(match.group('index'))
            if index >= count:
                continue
            key = match.group('name')
            # coupon_refund_fee_0_1 -> refund 0, key coupon_refund_fee_1
            if match.group('sub') is not None:
                key = f"{key}_{match.group('sub')}"
            grouped[index][key] = value
        return grouped


@dataclass(frozen=True)
class MicroPayResponse(ResponseRecord):
    """Result of /pay/micropay."""
    openid: str = ''
    is_subscribe: str = ''
    trade_type: str = ''
    bank_type: str = ''
    fee_type: str = ''
    total_fee: str = ''
    settlement_total_fee: str = ''
    coupon_fee: str = ''
    cash_fee_type: str = ''
    cash_fee: str = ''
    transaction_id: str = ''
    out_trade_no: str = ''
    attach: str = ''
    time_end: str = ''


@dataclass(frozen=True)
class ReverseOrderResponse(ResponseRecord):
    """Result of /secapi/pay/reverse. ``recall`` is Y when a retry is needed."""
    recall: str = ''


@dataclass(frozen=True)
class NotifyResponse(ResponseRecord):
    """Payment result pushed by the gateway to the merchant notify_url."""
    openid: str = ''
    is_subscribe: str = ''
    trade_type: str = ''
    bank_type: str = ''
    total_fee: str = ''
    settlement_total_fee: str = ''
    fee_type: str = ''
    cash_fee: str = ''
    cash_fee_type: str = ''
    coupon_fee: str = ''
    coupon_count: str = ''
    transaction_id: str = ''
    out_trade_no: str = ''
    attach: str = ''
    time_end: str = ''


__all__ = [
    "SUCCESS",
    "ResponseRecord",
    "UnifiedOrderResponse",
    "OrderQueryResponse",
    "CloseOrderResponse",
    "RefundResponse",
    "RefundQueryResponse",
    "MicroPayResponse",
    "ReverseOrderResponse",
    "NotifyResponse",
]
